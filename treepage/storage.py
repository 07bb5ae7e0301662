"""
Photo storage on the local filesystem.

Photos live under ``<uploads_dir>/photos/<username>/`` and are referenced
from profiles by the URL path they are served at (``/uploads/...``).
"""

from __future__ import annotations

import logging
import os
import random
import shutil
import time
from pathlib import Path
from typing import BinaryIO, Optional, Protocol, Sequence

from treepage.errors import IMAGE_ONLY_MESSAGE, InvalidInput, InvalidUpload

logger = logging.getLogger(__name__)

UPLOADS_URL_PREFIX = "/uploads"
DEFAULT_EXTENSION = ".jpg"
DEFAULT_MAX_FILES = 20


class UploadedPhoto(Protocol):
    """The parts of a multipart file we rely on (matches ``UploadFile``)."""

    filename: Optional[str]
    content_type: Optional[str]
    file: BinaryIO


def normalize_username(raw: Optional[str]) -> str:
    return (raw or "").strip().lower()


def safe_username_segment(username: str) -> str:
    """Return ``username`` if it is usable as a single directory name."""
    if not username:
        raise InvalidInput("Username is required")
    if username in (".", "..") or any(ch in username for ch in ("/", "\\", "\x00")):
        raise InvalidInput("Invalid username")
    return username


def is_image(content_type: Optional[str]) -> bool:
    return bool(content_type) and content_type.startswith("image/")


class PhotoStorage(Protocol):
    """Operations the API needs for user photos."""

    def save_photos(
        self, username: str, files: Sequence[UploadedPhoto]
    ) -> list[str]:
        ...

    def delete_photo(self, url_path: str) -> bool:
        ...


class LocalPhotoStorage:
    """Writes photos to per-user directories under the uploads root."""

    def __init__(
        self,
        uploads_dir: Path | str,
        *,
        max_files: int = DEFAULT_MAX_FILES,
        rng: Optional[random.Random] = None,
    ):
        self.uploads_dir = Path(uploads_dir)
        self.photo_dir = self.uploads_dir / "photos"
        self.max_files = max_files
        self._rng = rng or random.Random()

    def user_dir(self, username: str) -> Path:
        return self.photo_dir / safe_username_segment(username)

    def _generate_name(self, original_filename: Optional[str]) -> str:
        ext = os.path.splitext(os.path.basename(original_filename or ""))[1]
        base = f"{int(time.time() * 1000)}-{self._rng.randint(0, 10**9)}"
        return base + (ext or DEFAULT_EXTENSION)

    def _url_for(self, path: Path) -> str:
        rel = path.relative_to(self.uploads_dir).as_posix()
        return f"{UPLOADS_URL_PREFIX}/{rel}"

    def _write_one(self, dest_dir: Path, upload: UploadedPhoto) -> Path:
        while True:
            dest = dest_dir / self._generate_name(upload.filename)
            try:
                out = open(dest, "xb")
            except FileExistsError:
                continue
            try:
                with out:
                    shutil.copyfileobj(upload.file, out)
            except Exception:
                dest.unlink(missing_ok=True)
                raise
            return dest

    def save_photos(
        self, username: str, files: Sequence[UploadedPhoto]
    ) -> list[str]:
        """
        Store every file of the batch and return their URL paths in order.

        The batch is validated before anything touches the disk; if a write
        fails halfway, files already written for this batch are removed.
        Parts without a filename (an empty file input) are skipped.
        """
        files = [upload for upload in files if upload.filename]
        if len(files) > self.max_files:
            raise InvalidInput("Too many files")
        for upload in files:
            if not is_image(upload.content_type):
                logger.info(
                    "Rejected upload %r with content type %r",
                    upload.filename,
                    upload.content_type,
                )
                raise InvalidUpload(IMAGE_ONLY_MESSAGE)
        if not files:
            return []

        dest_dir = self.user_dir(username)
        dest_dir.mkdir(parents=True, exist_ok=True)
        written: list[Path] = []
        try:
            for upload in files:
                written.append(self._write_one(dest_dir, upload))
        except Exception:
            for path in written:
                try:
                    path.unlink()
                except OSError:
                    logger.exception("Failed to roll back partial upload %s", path)
            raise
        return [self._url_for(path) for path in written]

    def resolve(self, url_path: str) -> Optional[Path]:
        """Map a stored URL path back to a file under the photo directory."""
        clean = url_path.lstrip("/")
        prefix = UPLOADS_URL_PREFIX.strip("/") + "/"
        if not clean.startswith(prefix):
            return None
        candidate = (self.uploads_dir / clean[len(prefix):]).resolve()
        photo_root = self.photo_dir.resolve()
        if photo_root not in candidate.parents:
            return None
        return candidate

    def delete_photo(self, url_path: str) -> bool:
        """Remove the file behind ``url_path``; returns False if there was none."""
        path = self.resolve(url_path)
        if path is None:
            logger.warning("Refusing to delete path outside photo dir: %s", url_path)
            return False
        if not path.exists():
            return False
        path.unlink()
        return True
