"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import random

from fastapi import Request

from treepage.config import Settings, get_settings
from treepage.db import JsonFileStoreClient, StoreClient
from treepage.storage import LocalPhotoStorage, PhotoStorage

_store_client: StoreClient | None = None
_photo_storage: PhotoStorage | None = None


def configure(settings: Settings) -> None:
    """Build the singleton clients for ``settings``, replacing any existing ones."""
    global _store_client, _photo_storage
    _store_client = JsonFileStoreClient(settings.resolved_db_file())
    _photo_storage = LocalPhotoStorage(
        settings.resolved_uploads_dir(),
        max_files=settings.max_photos_per_request,
    )


def get_request_settings(request: Request) -> Settings:
    """Settings the running app was created with."""
    return request.app.state.settings


def get_store_client() -> StoreClient:
    """
    Return a singleton store client. Each request still loads a fresh snapshot.
    """
    if _store_client is None:
        configure(get_settings())
    return _store_client


def get_photo_storage() -> PhotoStorage:
    if _photo_storage is None:
        configure(get_settings())
    return _photo_storage


def get_short_id_rng() -> random.Random | None:
    """Randomness source for short ids; ``None`` means the system source."""
    return None
