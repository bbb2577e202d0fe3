"""
SnapCap Backend: Duet Service
===============================

What:  Duets: a user's media + text response to someone else's post.
How:   Creating a duet also publishes a response Post (author = duet author,
       caption = response text) so the answer shows up in feeds. The
       original post's duets_count is recomputed on create and delete.
"""

import logging
import uuid
from typing import List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from snapcap.database import utcnow
from snapcap.exceptions import NotFoundError
from snapcap.models.post import Duet, DuetLike, Post
from snapcap.models.user import User
from snapcap.schemas.common import Page
from snapcap.schemas.post import DuetOut, LikeState
from snapcap.services.post_service import post_service
from snapcap.services.storage_service import StoredMedia, storage_service
from snapcap.services.user_service import user_service

logger = logging.getLogger(__name__)

DUET_NOT_FOUND = "Duet not found"
NOT_FOUND_OR_NOT_AUTHORIZED = "Duet not found or not authorized"
CAPTION_LIMIT = 500


class DuetService:
    async def get_duet(self, db: AsyncSession, duet_id: uuid.UUID) -> Duet:
        duet = await db.get(Duet, duet_id)
        if duet is None:
            raise NotFoundError(message=DUET_NOT_FOUND, resource="duet", resource_id=str(duet_id))
        return duet

    async def _owned(self, db: AsyncSession, author: User, duet_id: uuid.UUID) -> Duet:
        duet = await db.get(Duet, duet_id)
        if duet is None or duet.author_id != author.id:
            raise NotFoundError(message=NOT_FOUND_OR_NOT_AUTHORIZED, resource="duet", resource_id=str(duet_id))
        return duet

    async def to_out(self, db: AsyncSession, duets: List[Duet], viewer: Optional[User] = None) -> List[DuetOut]:
        liked = set()
        if viewer is not None and duets:
            result = await db.execute(
                select(DuetLike.duet_id).where(
                    DuetLike.user_id == viewer.id, DuetLike.duet_id.in_([d.id for d in duets])
                )
            )
            liked = set(result.scalars().all())
        return [DuetOut.from_duet(d, d.id in liked) for d in duets]

    async def _recount(self, db: AsyncSession, post_id: uuid.UUID) -> None:
        post = await db.get(Post, post_id)
        if post is not None:
            post.duets_count = await db.scalar(
                select(func.count()).select_from(Duet).where(Duet.original_post_id == post_id)
            ) or 0

    async def _page(self, db: AsyncSession, conditions, page: int, limit: int) -> Page[Duet]:
        total = await db.scalar(select(func.count()).select_from(Duet).where(*conditions))
        result = await db.execute(
            select(Duet)
            .where(*conditions)
            .order_by(Duet.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return Page(list(result.scalars().unique().all()), total or 0, page, limit)

    # ── Listings ──────────────────────────────────────────────────────────

    async def list_all(self, db: AsyncSession, page: int, limit: int) -> Page[Duet]:
        return await self._page(db, [], page, limit)

    async def for_post(self, db: AsyncSession, post_id: uuid.UUID, page: int, limit: int) -> Page[Duet]:
        await post_service.get_post(db, post_id)
        return await self._page(db, [Duet.original_post_id == post_id], page, limit)

    async def for_user(self, db: AsyncSession, user_id: uuid.UUID, page: int, limit: int) -> Page[Duet]:
        await user_service.get_user(db, user_id)
        return await self._page(db, [Duet.author_id == user_id], page, limit)

    # ── CRUD ──────────────────────────────────────────────────────────────

    async def create(
        self, db: AsyncSession, author: User, post_id: uuid.UUID, response: str, media: StoredMedia
    ) -> Duet:
        original = await db.get(Post, post_id)
        if original is None:
            await storage_service.delete(media.public_id)
            raise NotFoundError(message="Original post not found", resource="post", resource_id=str(post_id))

        response_post = Post(
            author=author,
            image=media.url,
            media_public_id=media.public_id,
            media_type=media.media_type,
            caption=response[:CAPTION_LIMIT],
            hashtags=[],
            is_public=True,
        )
        duet = Duet(
            original_post=original,
            response_post=response_post,
            author=author,
            response=response,
        )
        db.add_all([response_post, duet])
        await db.flush()
        await self._recount(db, original.id)
        await db.flush()
        logger.info("Duet %s on post %s by %s", duet.id, original.id, author.username)
        return duet

    async def update(self, db: AsyncSession, author: User, duet_id: uuid.UUID, response: str) -> Duet:
        duet = await self._owned(db, author, duet_id)
        duet.response = response
        duet.updated_at = utcnow()
        if duet.response_post is not None:
            duet.response_post.caption = response[:CAPTION_LIMIT]
        await db.flush()
        return duet

    async def delete_duet(self, db: AsyncSession, author: User, duet_id: uuid.UUID) -> None:
        """Delete the duet, its likes and its response post."""
        duet = await self._owned(db, author, duet_id)
        original_id = duet.original_post_id
        response_post = duet.response_post

        await db.execute(delete(DuetLike).where(DuetLike.duet_id == duet.id))
        await db.delete(duet)
        await db.flush()
        if response_post is not None:
            await post_service.remove(db, response_post)
        await self._recount(db, original_id)
        await db.flush()

    async def toggle_like(self, db: AsyncSession, user: User, duet_id: uuid.UUID) -> LikeState:
        duet = await self.get_duet(db, duet_id)
        existing = await db.get(DuetLike, (duet.id, user.id))
        if existing is None:
            db.add(DuetLike(duet_id=duet.id, user_id=user.id))
        else:
            await db.delete(existing)
        await db.flush()
        duet.likes_count = await db.scalar(
            select(func.count()).select_from(DuetLike).where(DuetLike.duet_id == duet.id)
        ) or 0
        await db.flush()
        return LikeState(is_liked=existing is None, likes_count=duet.likes_count)


# ── Singleton Instance ────────────────────────────────────────────────────
duet_service = DuetService()
