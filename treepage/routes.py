"""
HTTP routes for the tree page API.
"""

from __future__ import annotations

import json
import logging
import random
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import PlainTextResponse, RedirectResponse
from pydantic import ValidationError

from treepage import short_id as short_ids
from treepage.config import Settings
from treepage.db import ProfileRecord, StoreClient
from treepage.dependencies import (
    get_photo_storage,
    get_request_settings,
    get_short_id_rng,
    get_store_client,
)
from treepage.errors import InvalidInput, NotFound
from treepage.schemas import (
    DeletePhotoRequest,
    DeletePhotoResponse,
    ProfileResponse,
    UpdateProfileResponse,
)
from treepage.storage import PhotoStorage, normalize_username, safe_username_segment

logger = logging.getLogger(__name__)

router = APIRouter()
link_router = APIRouter()


def _profile_response(profile: ProfileRecord) -> ProfileResponse:
    return ProfileResponse(
        username=profile.username,
        blessing=profile.blessing,
        photos=list(profile.photos),
        shortId=profile.short_id,
    )


@router.get("/user/{username}", response_model=ProfileResponse)
def get_user(username: str, store_client: StoreClient = Depends(get_store_client)):
    username = normalize_username(username)
    profile = store_client.load().get_profile(username)
    if profile is None:
        raise NotFound("User not found")
    return _profile_response(profile)


@router.post("/config/{username}", response_model=UpdateProfileResponse)
def update_config(
    username: str,
    blessing: Optional[str] = Form(None),
    photos: Optional[list[UploadFile]] = File(None),
    store_client: StoreClient = Depends(get_store_client),
    photo_storage: PhotoStorage = Depends(get_photo_storage),
    settings: Settings = Depends(get_request_settings),
    rng: Optional[random.Random] = Depends(get_short_id_rng),
):
    """
    Replace the blessing, append uploaded photos and make sure a short id exists.
    """
    username = normalize_username(username)
    if not username:
        raise InvalidInput("Username is required")
    safe_username_segment(username)
    blessing = (blessing or "").strip()

    new_paths = photo_storage.save_photos(username, photos or [])

    store = store_client.load()
    existing = store.get_profile(username)
    merged_photos = list(existing.photos) if existing else []
    merged_photos.extend(new_paths)

    short_id = existing.short_id if existing else None
    if not short_id:
        short_id = short_ids.generate(
            store.short_ids(),
            rng,
            length=settings.short_id_length,
            max_attempts=settings.short_id_max_attempts,
        )
        logger.info("Assigned short id %s to %s", short_id, username)

    profile = ProfileRecord(
        username=username,
        blessing=blessing,
        photos=merged_photos,
        short_id=short_id,
    )
    store.put_profile(profile)
    store_client.save(store)

    return UpdateProfileResponse(
        username=username,
        blessing=blessing,
        photos=merged_photos,
        shortId=short_id,
        shortUrl=f"/u/{short_id}",
    )


FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


async def read_delete_photo_request(request: Request) -> DeletePhotoRequest:
    """
    Parse the delete-photo body from either a JSON or a form-encoded request.
    """
    content_type = request.headers.get("content-type", "")
    if content_type.startswith(FORM_CONTENT_TYPES):
        form = await request.form()
        data = {key: form[key] for key in ("photoUrl",) if key in form}
    else:
        body = await request.body()
        if not body:
            return DeletePhotoRequest()
        try:
            data = json.loads(body)
        except ValueError:
            raise InvalidInput("Invalid request", ok_flag=True)
        if not isinstance(data, dict):
            raise InvalidInput("Invalid request", ok_flag=True)
    try:
        return DeletePhotoRequest.model_validate(data)
    except ValidationError:
        raise InvalidInput("Invalid request", ok_flag=True)


@router.post("/delete-photo/{username}", response_model=DeletePhotoResponse)
def delete_photo(
    username: str,
    payload: DeletePhotoRequest = Depends(read_delete_photo_request),
    store_client: StoreClient = Depends(get_store_client),
    photo_storage: PhotoStorage = Depends(get_photo_storage),
):
    username = normalize_username(username)
    if not username:
        raise InvalidInput("Username is required", ok_flag=True)
    photo_url = payload.photoUrl
    if not photo_url:
        raise InvalidInput("Photo URL is required", ok_flag=True)

    logger.info("Delete photo request for %s: %s", username, photo_url)
    store = store_client.load()
    profile = store.get_profile(username)
    if profile is None:
        raise NotFound("User not found", ok_flag=True)
    if photo_url not in profile.photos:
        logger.info("Photo %s not found for %s", photo_url, username)
        raise NotFound("Photo not found in user data", ok_flag=True)

    profile.photos.remove(photo_url)
    store_client.save(store)
    logger.info("Removed photo from %s, %d remaining", username, len(profile.photos))

    # The store is authoritative; a leftover file is only worth a log line.
    try:
        if not photo_storage.delete_photo(photo_url):
            logger.info("File for %s not found on disk", photo_url)
    except (OSError, ValueError):
        logger.exception("Failed to delete file for %s", photo_url)

    return DeletePhotoResponse()


@link_router.get("/u/{short_id}")
def resolve_short_link(
    short_id: str,
    store_client: StoreClient = Depends(get_store_client),
    settings: Settings = Depends(get_request_settings),
):
    username = store_client.load().resolve_short_id(short_id.strip())
    if not username:
        return PlainTextResponse("Invalid link", status_code=404)
    return RedirectResponse(
        f"{settings.profile_page}?user={quote(username, safe='')}",
        status_code=302,
    )
