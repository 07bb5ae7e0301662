"""
Profile store backed by a single JSON file, plus an in-memory test double.

The whole store (profiles by username and the short-id reverse index) is
always loaded and saved as one document so both mappings stay consistent.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Protocol

from treepage.errors import StorageIOError

logger = logging.getLogger(__name__)


@dataclass
class ProfileRecord:
    username: str
    blessing: str = ""
    photos: list[str] = field(default_factory=list)
    short_id: Optional[str] = None

    def as_dict(self) -> dict:
        return {
            "username": self.username,
            "blessing": self.blessing,
            "photos": list(self.photos),
            "shortId": self.short_id,
        }

    @classmethod
    def from_dict(cls, username: str, data: dict) -> "ProfileRecord":
        photos = data.get("photos")
        return cls(
            username=data.get("username") or username,
            blessing=data.get("blessing") or "",
            photos=list(photos) if isinstance(photos, list) else [],
            short_id=data.get("shortId") or None,
        )


@dataclass
class Store:
    by_username: Dict[str, ProfileRecord] = field(default_factory=dict)
    by_short_id: Dict[str, str] = field(default_factory=dict)

    def get_profile(self, username: str) -> Optional[ProfileRecord]:
        return self.by_username.get(username)

    def resolve_short_id(self, short_id: str) -> Optional[str]:
        return self.by_short_id.get(short_id)

    def short_ids(self) -> set[str]:
        return set(self.by_short_id)

    def put_profile(self, profile: ProfileRecord) -> None:
        """Insert or replace a profile and register its short-id back reference."""
        previous = self.by_username.get(profile.username)
        if (
            previous is not None
            and previous.short_id
            and previous.short_id != profile.short_id
            and self.by_short_id.get(previous.short_id) == profile.username
        ):
            del self.by_short_id[previous.short_id]
        self.by_username[profile.username] = profile
        if profile.short_id:
            self.by_short_id[profile.short_id] = profile.username

    def as_dict(self) -> dict:
        return {
            "byUsername": {
                username: profile.as_dict()
                for username, profile in self.by_username.items()
            },
            "byShortId": dict(self.by_short_id),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Store":
        raw_profiles = data.get("byUsername") or {}
        raw_short_ids = data.get("byShortId") or {}
        if not isinstance(raw_profiles, dict) or not isinstance(raw_short_ids, dict):
            raise ValueError("Store document has unexpected shape")
        return cls(
            by_username={
                username: ProfileRecord.from_dict(username, value)
                for username, value in raw_profiles.items()
                if isinstance(value, dict)
            },
            by_short_id={str(k): str(v) for k, v in raw_short_ids.items()},
        )


class StoreClient(Protocol):
    """Load/save interface for the profile store."""

    def load(self) -> Store:
        ...

    def save(self, store: Store) -> None:
        ...


class JsonFileStoreClient:
    """Stores the full document as indented JSON in one file."""

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def load(self) -> Store:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return Store()
        except OSError as exc:
            logger.warning("Could not read store file %s: %s", self.path, exc)
            return Store()
        try:
            return Store.from_dict(json.loads(raw))
        except (ValueError, TypeError, AttributeError) as exc:
            logger.warning("Ignoring unparsable store file %s: %s", self.path, exc)
            return Store()

    def save(self, store: Store) -> None:
        payload = json.dumps(store.as_dict(), indent=2, ensure_ascii=False)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(payload, encoding="utf-8")
        except OSError as exc:
            raise StorageIOError(f"Failed to write store file {self.path}") from exc


class InMemoryStoreClient:
    """In-memory store for development and tests."""

    def __init__(self):
        self.document: dict = {}

    def load(self) -> Store:
        # Round-trip through JSON so callers never share state with the snapshot.
        return Store.from_dict(json.loads(json.dumps(self.document)))

    def save(self, store: Store) -> None:
        self.document = json.loads(json.dumps(store.as_dict()))

    def reset(self) -> None:
        self.document = {}
