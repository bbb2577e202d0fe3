"""
SnapCap Backend: Story Service
================================

What:  Ephemeral stories: create, append frames, view, delete, cleanup.
Why:   A story is visible while `is_active` and `expires_at > now`;
       `cleanup()` flips is_active on the expired ones so listings and
       indexes stay small.
How:   Views are StoryView rows keyed (story, user); views_count is their
       count, so viewing twice counts once. The author's own views are not
       recorded.
"""

import logging
import uuid
from datetime import timedelta
from typing import List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from snapcap.config import settings
from snapcap.database import utcnow
from snapcap.exceptions import DatabaseError, NotFoundError, ValidationError
from snapcap.models.story import Story, StoryItem, StoryView
from snapcap.models.user import User
from snapcap.schemas.story import StoryItemIn, StoryOut, StoryViewState
from snapcap.services.storage_service import StoredMedia, storage_service
from snapcap.services.user_service import user_service

logger = logging.getLogger(__name__)

STORY_NOT_FOUND = "Story not found"
NOT_FOUND_OR_NOT_AUTHORIZED = "Story not found or not authorized"


class StoryService:
    def _item(self, position: int, data: StoryItemIn, media: StoredMedia) -> StoryItem:
        return StoryItem(
            position=position,
            media_url=media.url,
            media_public_id=media.public_id,
            caption=data.caption,
            music=data.music.model_dump() if data.music else None,
            text_overlay=data.text_overlay.model_dump() if data.text_overlay else None,
        )

    def _active(self):
        return [Story.is_active.is_(True), Story.expires_at > utcnow()]

    async def to_out(self, db: AsyncSession, stories: List[Story], viewer: Optional[User] = None) -> List[StoryOut]:
        viewed = set()
        if viewer is not None and stories:
            result = await db.execute(
                select(StoryView.story_id).where(
                    StoryView.user_id == viewer.id,
                    StoryView.story_id.in_([s.id for s in stories]),
                )
            )
            viewed = set(result.scalars().all())
        return [StoryOut.from_story(s, s.id in viewed) for s in stories]

    async def _live_story(self, db: AsyncSession, story_id: uuid.UUID) -> Story:
        story = await db.get(Story, story_id)
        if story is None:
            raise NotFoundError(message=STORY_NOT_FOUND, resource="story", resource_id=str(story_id))
        if not story.is_active or story.is_expired():
            raise NotFoundError(message="Story has expired", resource="story", resource_id=str(story_id))
        return story

    async def _owned(self, db: AsyncSession, author: User, story_id: uuid.UUID) -> Story:
        story = await db.get(Story, story_id)
        if story is None or story.author_id != author.id:
            raise NotFoundError(message=NOT_FOUND_OR_NOT_AUTHORIZED, resource="story", resource_id=str(story_id))
        return story

    # ── Listings ──────────────────────────────────────────────────────────

    async def active_feed(self, db: AsyncSession, viewer: Optional[User]) -> List[Story]:
        """Active stories of followed users and the caller; every active story when anonymous."""
        conditions = self._active()
        if viewer is not None:
            authors = await user_service.following_ids(db, viewer.id)
            authors.append(viewer.id)
            conditions.append(Story.author_id.in_(authors))
        result = await db.execute(select(Story).where(*conditions).order_by(Story.created_at.desc()))
        return list(result.scalars().unique().all())

    async def for_user(self, db: AsyncSession, user_id: uuid.UUID) -> List[Story]:
        await user_service.get_user(db, user_id)
        result = await db.execute(
            select(Story)
            .where(Story.author_id == user_id, *self._active())
            .order_by(Story.created_at.desc())
        )
        return list(result.scalars().unique().all())

    async def get_story(self, db: AsyncSession, story_id: uuid.UUID) -> Story:
        return await self._live_story(db, story_id)

    # ── Writes ────────────────────────────────────────────────────────────

    async def create(self, db: AsyncSession, author: User, data: StoryItemIn, media: StoredMedia) -> Story:
        story = Story(
            author=author,
            expires_at=utcnow() + timedelta(hours=settings.story_lifetime_hours),
            items=[self._item(0, data, media)],
        )
        db.add(story)
        try:
            await db.flush()
        except SQLAlchemyError as e:
            await storage_service.delete(media.public_id)
            logger.error("Failed to create story for %s: %s", author.username, e, exc_info=True)
            raise DatabaseError(context={"original_error": type(e).__name__}) from e
        logger.info("Story created: %s by %s", story.id, author.username)
        return story

    async def add_content(
        self, db: AsyncSession, author: User, story_id: uuid.UUID, data: StoryItemIn, media: StoredMedia
    ) -> Story:
        story = await self._owned(db, author, story_id)
        if not story.is_active or story.is_expired():
            await storage_service.delete(media.public_id)
            raise ValidationError(message="Cannot add content to expired story", field="storyId")
        story.items.append(self._item(len(story.items), data, media))
        await db.flush()
        return story

    async def has_viewed(self, db: AsyncSession, viewer: User, story_id: uuid.UUID) -> bool:
        return await db.get(StoryView, (story_id, viewer.id)) is not None

    async def mark_viewed(self, db: AsyncSession, viewer: User, story_id: uuid.UUID) -> StoryViewState:
        story = await self._live_story(db, story_id)
        if story.author_id != viewer.id and await db.get(StoryView, (story.id, viewer.id)) is None:
            db.add(StoryView(story_id=story.id, user_id=viewer.id))
            await db.flush()
            story.views_count = await db.scalar(
                select(func.count()).select_from(StoryView).where(StoryView.story_id == story.id)
            ) or 0
            await db.flush()
        return StoryViewState(is_viewed=True, views_count=story.views_count)

    async def delete_story(self, db: AsyncSession, author: User, story_id: uuid.UUID) -> None:
        story = await self._owned(db, author, story_id)
        public_ids = [item.media_public_id for item in story.items]
        await db.execute(delete(StoryView).where(StoryView.story_id == story.id))
        await db.delete(story)
        await db.flush()
        for public_id in public_ids:
            await storage_service.delete(public_id)

    async def cleanup(self, db: AsyncSession) -> int:
        """Deactivate expired stories. Returns how many changed."""
        result = await db.execute(
            update(Story)
            .where(Story.is_active.is_(True), Story.expires_at <= utcnow())
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        count = result.rowcount or 0
        if count:
            logger.info("Deactivated %d expired stories", count)
        return count


# ── Singleton Instance ────────────────────────────────────────────────────
story_service = StoryService()
