"""
Configuration and settings for the tree page backend.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    api_prefix: str = Field(default="/api")

    # Process
    host: str = Field(default="0.0.0.0", validation_alias="HOST")
    port: int = Field(default=3000, validation_alias="PORT")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    # Filesystem layout. Unset paths are derived from root_dir.
    root_dir: Path = Field(
        default_factory=lambda: Path(os.getcwd()),
        validation_alias="TREEPAGE_ROOT_DIR",
    )
    data_dir: Optional[Path] = Field(default=None, validation_alias="TREEPAGE_DATA_DIR")
    db_file: Optional[Path] = Field(default=None, validation_alias="TREEPAGE_DB_FILE")
    uploads_dir: Optional[Path] = Field(
        default=None, validation_alias="TREEPAGE_UPLOADS_DIR"
    )

    # Uploads
    max_photos_per_request: int = Field(default=20)

    # Short links
    short_id_length: int = Field(default=6)
    short_id_max_attempts: int = Field(default=1000)
    profile_page: str = Field(default="/tree.html")

    def resolved_data_dir(self) -> Path:
        return self.data_dir or self.root_dir / "data"

    def resolved_db_file(self) -> Path:
        return self.db_file or self.resolved_data_dir() / "users.json"

    def resolved_uploads_dir(self) -> Path:
        return self.uploads_dir or self.root_dir / "uploads"

    def resolved_photo_dir(self) -> Path:
        return self.resolved_uploads_dir() / "photos"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
