"""
SnapCap Backend: Story Routes
===============================

What:  /api/stories: active stories, upload, append, view, delete, cleanup
       and story caption suggestions.
How:   Uploads are multipart; `music` and `textOverlay` arrive as JSON
       encoded form fields and are validated through StoryItemIn before the
       file is stored.
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from snapcap.database import get_db_session
from snapcap.dependencies import build_model, get_current_user, json_field, optional_user
from snapcap.exceptions import ValidationError
from snapcap.models.user import User
from snapcap.schemas.common import Envelope, MessageEnvelope, ModifiedCount, ok
from snapcap.schemas.post import CaptionResult
from snapcap.schemas.story import StoryItemIn, StoryList, StoryOut, StoryViewState
from snapcap.services.caption_service import caption_service, normalize_context
from snapcap.services.storage_service import STORY, storage_service
from snapcap.services.story_service import story_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/stories", tags=["Stories"])


async def _story_item(
    image: Optional[UploadFile], caption: str, music: Optional[str], text_overlay: Optional[str]
):
    data = build_model(
        StoryItemIn,
        caption=caption,
        music=json_field(music, "music"),
        text_overlay=json_field(text_overlay, "textOverlay"),
    )
    if image is None:
        raise ValidationError(message="Image is required", field="image")
    media = await storage_service.save_upload(image, STORY)
    return data, media


async def _one(db: AsyncSession, story, viewer: Optional[User]) -> StoryOut:
    return (await story_service.to_out(db, [story], viewer))[0]


@router.get("", response_model=Envelope[StoryList], summary="Active stories of followed users and self")
async def active_stories(
    viewer: Optional[User] = Depends(optional_user),
    db: AsyncSession = Depends(get_db_session),
):
    stories = await story_service.active_feed(db, viewer)
    return ok(StoryList(stories=await story_service.to_out(db, stories, viewer)))


@router.get("/user/{user_id}", response_model=Envelope[StoryList])
async def user_stories(
    user_id: uuid.UUID,
    viewer: Optional[User] = Depends(optional_user),
    db: AsyncSession = Depends(get_db_session),
):
    stories = await story_service.for_user(db, user_id)
    return ok(StoryList(stories=await story_service.to_out(db, stories, viewer)))


@router.post("", status_code=201, response_model=Envelope[StoryOut], summary="Start a story")
async def create_story(
    image: Optional[UploadFile] = File(default=None, description="Image or video, max 30MB"),
    caption: str = Form(default=""),
    music: Optional[str] = Form(default=None, description="JSON {title, artist, preview, duration}"),
    text_overlay: Optional[str] = Form(default=None, alias="textOverlay"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    data, media = await _story_item(image, caption, music, text_overlay)
    story = await story_service.create(db, user, data, media)
    return ok(await _one(db, story, user), "Story created successfully")


@router.post("/cleanup", response_model=Envelope[ModifiedCount], summary="Deactivate expired stories")
async def cleanup(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db_session)):
    count = await story_service.cleanup(db)
    return ok(ModifiedCount(modified_count=count), "Expired stories cleaned up successfully")


@router.post(
    "/generate-caption",
    response_model=Envelope[CaptionResult],
    summary="Caption and four hashtags for a multi-frame story",
    description="Uses Gemini when configured; otherwise (or on any failure) the offline generator.",
)
async def generate_caption(
    image_count: int = Form(default=1, alias="imageCount", ge=1, le=20),
    location: Optional[str] = Form(default=None),
    mood: Optional[str] = Form(default=None),
    time_of_day: Optional[str] = Form(default=None, alias="timeOfDay"),
    user: User = Depends(get_current_user),
):
    result = await caption_service.generate_story_caption(image_count, normalize_context(location, mood, time_of_day))
    logger.info("Story caption for %s (%d frames, generated=%s)", user.username, image_count, result.generated)
    return ok(result, "Story caption generated successfully")


@router.post("/{story_id}/content", response_model=Envelope[StoryOut], summary="Append a frame")
async def add_content(
    story_id: uuid.UUID,
    image: Optional[UploadFile] = File(default=None),
    caption: str = Form(default=""),
    music: Optional[str] = Form(default=None),
    text_overlay: Optional[str] = Form(default=None, alias="textOverlay"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    data, media = await _story_item(image, caption, music, text_overlay)
    story = await story_service.add_content(db, user, story_id, data, media)
    return ok(await _one(db, story, user), "Content added to story successfully")


@router.get("/{story_id}", response_model=Envelope[StoryOut])
async def get_story(
    story_id: uuid.UUID,
    viewer: Optional[User] = Depends(optional_user),
    db: AsyncSession = Depends(get_db_session),
):
    story = await story_service.get_story(db, story_id)
    return ok(await _one(db, story, viewer))


@router.post("/{story_id}/view", response_model=Envelope[StoryViewState])
async def view_story(
    story_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    already = await story_service.has_viewed(db, user, story_id)
    state = await story_service.mark_viewed(db, user, story_id)
    return ok(state, "Story already viewed" if already else "Story marked as viewed")


@router.delete("/{story_id}", response_model=MessageEnvelope)
async def delete_story(
    story_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await story_service.delete_story(db, user, story_id)
    return MessageEnvelope(message="Story deleted successfully")
