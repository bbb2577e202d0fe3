"""
SnapCap Backend: Post Routes
==============================

What:  /api/posts: feed, trending, explore, CRUD, interactions and the
       caption generator.
How:   Post creation is multipart. Form fields are validated first, the
       upload second, and the row last, so a rejected file (wrong type,
       "File too large") never leaves a post behind.

Route order matters: the fixed paths (/trending, /explore,
/generate-caption) are declared before /{post_id}.
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from snapcap.database import get_db_session
from snapcap.dependencies import PageParams, build_model, get_current_user, optional_user, page_params
from snapcap.exceptions import ValidationError
from snapcap.models.user import User
from snapcap.schemas.common import Envelope, MessageEnvelope, ok
from snapcap.schemas.post import (
    CaptionResult,
    CommentList,
    LikeRequest,
    LikeState,
    PostCreate,
    PostList,
    PostOut,
    PostUpdate,
    SaveState,
    ShareState,
)
from snapcap.services.caption_service import caption_service, normalize_context
from snapcap.services.comment_service import comment_service
from snapcap.services.post_service import post_service
from snapcap.services.storage_service import CAPTION, POST, storage_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/posts", tags=["Posts"])

IMAGE_REQUIRED = "Image is required"


def _location(name: Optional[str], lat: Optional[float], lng: Optional[float]) -> Optional[dict]:
    if not name and lat is None and lng is None:
        return None
    return {"name": name or None, "lat": lat, "lng": lng}


async def _post_page(db: AsyncSession, page, viewer: Optional[User]) -> PostList:
    return PostList(posts=await post_service.to_out(db, page.items, viewer), pagination=page.pagination)


# ══════════════════════════════════════════════════════════════════════════
# Listings
# ══════════════════════════════════════════════════════════════════════════


@router.get("", response_model=Envelope[PostList], summary="Home feed")
async def feed(
    paging: PageParams = Depends(page_params),
    viewer: Optional[User] = Depends(optional_user),
    db: AsyncSession = Depends(get_db_session),
):
    page = await post_service.feed(db, viewer, paging.page, paging.limit)
    return ok(await _post_page(db, page, viewer))


@router.get("/trending", response_model=Envelope[PostList], summary="Most engaged posts of the last week")
async def trending(
    paging: PageParams = Depends(page_params),
    viewer: Optional[User] = Depends(optional_user),
    db: AsyncSession = Depends(get_db_session),
):
    page = await post_service.trending(db, paging.page, paging.limit)
    return ok(await _post_page(db, page, viewer))


@router.get("/explore", response_model=Envelope[PostList], summary="Public posts by other users")
async def explore(
    paging: PageParams = Depends(page_params),
    viewer: Optional[User] = Depends(optional_user),
    db: AsyncSession = Depends(get_db_session),
):
    page = await post_service.explore(db, viewer, paging.page, paging.limit)
    return ok(await _post_page(db, page, viewer))


# ══════════════════════════════════════════════════════════════════════════
# Captions
# ══════════════════════════════════════════════════════════════════════════


@router.post(
    "/generate-caption",
    response_model=Envelope[CaptionResult],
    summary="Caption and four hashtags for an image",
    description="Uses Gemini when configured; otherwise (or on any failure) the offline generator.",
)
async def generate_caption(
    image: Optional[UploadFile] = File(default=None),
    location: Optional[str] = Form(default=None),
    mood: Optional[str] = Form(default=None),
    time_of_day: Optional[str] = Form(default=None, alias="timeOfDay"),
    user: User = Depends(get_current_user),
):
    if image is None:
        raise ValidationError(message=IMAGE_REQUIRED, field="image")
    try:
        storage_service.validate_type(CAPTION, image.filename or "", image.content_type)
        content = await storage_service.read_upload(image, CAPTION)
        mime = storage_service.verify_content(CAPTION, content, image.filename or "")
    finally:
        await image.close()

    result = await caption_service.generate_caption(content, mime, normalize_context(location, mood, time_of_day))
    logger.info("Caption for %s (generated=%s)", user.username, result.generated)
    return ok(result, "Captions generated successfully")


# ══════════════════════════════════════════════════════════════════════════
# CRUD
# ══════════════════════════════════════════════════════════════════════════


@router.post("", status_code=201, response_model=Envelope[PostOut], summary="Publish a post")
async def create_post(
    image: Optional[UploadFile] = File(default=None, description="Image or video, max 50MB"),
    caption: str = Form(default=""),
    hashtags: Optional[str] = Form(default=None, description="JSON array or comma separated"),
    location_name: Optional[str] = Form(default=None, alias="location"),
    lat: Optional[float] = Form(default=None),
    lng: Optional[float] = Form(default=None),
    is_public: bool = Form(default=True, alias="isPublic"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    data = build_model(
        PostCreate,
        caption=caption,
        hashtags=hashtags,
        location=_location(location_name, lat, lng),
        is_public=is_public,
    )
    if image is None:
        raise ValidationError(message=IMAGE_REQUIRED, field="image")

    media = await storage_service.save_upload(image, POST)
    post = await post_service.create(db, user, data, media)
    out = (await post_service.to_out(db, [post], user))[0]
    return ok(out, "Post created successfully")


@router.get("/{post_id}", response_model=Envelope[PostOut], summary="One post (counts a view)")
async def get_post(
    post_id: uuid.UUID,
    viewer: Optional[User] = Depends(optional_user),
    db: AsyncSession = Depends(get_db_session),
):
    post = await post_service.view(db, post_id)
    return ok((await post_service.to_out(db, [post], viewer))[0])


@router.put("/{post_id}", response_model=Envelope[PostOut])
async def update_post(
    post_id: uuid.UUID,
    body: PostUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    post = await post_service.update(db, user, post_id, body)
    return ok((await post_service.to_out(db, [post], user))[0], "Post updated successfully")


@router.delete("/{post_id}", response_model=MessageEnvelope)
async def delete_post(
    post_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await post_service.delete_post(db, user, post_id)
    return MessageEnvelope(message="Post deleted successfully")


# ══════════════════════════════════════════════════════════════════════════
# Interactions
# ══════════════════════════════════════════════════════════════════════════


@router.post("/{post_id}/like", response_model=Envelope[LikeState], summary="Toggle a like")
async def toggle_like(
    post_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    state = await post_service.toggle_like(db, user, post_id)
    return ok(state, "Post liked" if state.is_liked else "Post unliked")


@router.put("/{post_id}/like", response_model=Envelope[LikeState], summary="Set the like state")
async def set_like(
    post_id: uuid.UUID,
    body: LikeRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    state = await post_service.set_like(db, user, post_id, body.liked)
    return ok(state, "Post liked" if state.is_liked else "Post unliked")


@router.post("/{post_id}/save", response_model=Envelope[SaveState])
async def toggle_save(
    post_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    state = await post_service.toggle_save(db, user, post_id)
    return ok(state, "Post saved" if state.is_saved else "Post unsaved")


@router.post("/{post_id}/share", response_model=Envelope[ShareState])
async def share(
    post_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return ok(await post_service.share(db, post_id), "Post shared successfully")


@router.get("/{post_id}/comments", response_model=Envelope[CommentList])
async def post_comments(
    post_id: uuid.UUID,
    paging: PageParams = Depends(page_params),
    viewer: Optional[User] = Depends(optional_user),
    db: AsyncSession = Depends(get_db_session),
):
    page = await comment_service.for_post(db, post_id, paging.page, paging.limit)
    comments = await comment_service.to_out(db, page.items, viewer)
    return ok(CommentList(comments=comments, pagination=page.pagination))
