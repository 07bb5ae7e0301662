"""
Pydantic schemas for the tree page API.

Field names follow the JSON the frontend already consumes (camelCase).
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel


class ProfileResponse(BaseModel):
    username: str
    blessing: str
    photos: list[str]
    shortId: Optional[str] = None


class UpdateProfileResponse(BaseModel):
    ok: Literal[True] = True
    username: str
    blessing: str
    photos: list[str]
    shortId: str
    shortUrl: str


class DeletePhotoRequest(BaseModel):
    photoUrl: Optional[str] = None


class DeletePhotoResponse(BaseModel):
    ok: Literal[True] = True
    message: str = "Photo deleted successfully"
