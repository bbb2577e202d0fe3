"""
SnapCap Backend: Comment Service
==================================

What:  Comments and replies on posts, comment likes and pinning.
How:   A reply is a Comment whose parent_id points at another comment on the
       same post. post.comments_count counts top-level comments only;
       parent.replies_count counts direct replies. Both are recomputed.

Ordering:
    Top-level listing: pinned first, then newest first.
    Replies: oldest first (reads as a thread).
"""

import logging
import uuid
from typing import List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from snapcap.database import utcnow
from snapcap.exceptions import ForbiddenError, NotFoundError
from snapcap.models.post import Comment, CommentLike, Post
from snapcap.models.user import User
from snapcap.schemas.common import Page
from snapcap.schemas.post import CommentCreate, CommentOut, LikeState, PinState
from snapcap.services.post_service import post_service

logger = logging.getLogger(__name__)

COMMENT_NOT_FOUND = "Comment not found"
NOT_FOUND_OR_NOT_AUTHORIZED = "Comment not found or not authorized"


class CommentService:
    async def get_comment(self, db: AsyncSession, comment_id: uuid.UUID) -> Comment:
        comment = await db.get(Comment, comment_id)
        if comment is None:
            raise NotFoundError(message=COMMENT_NOT_FOUND, resource="comment", resource_id=str(comment_id))
        return comment

    async def _owned(self, db: AsyncSession, author: User, comment_id: uuid.UUID) -> Comment:
        comment = await db.get(Comment, comment_id)
        if comment is None or comment.author_id != author.id:
            raise NotFoundError(message=NOT_FOUND_OR_NOT_AUTHORIZED, resource="comment", resource_id=str(comment_id))
        return comment

    async def to_out(self, db: AsyncSession, comments: List[Comment], viewer: Optional[User] = None) -> List[CommentOut]:
        liked = set()
        if viewer is not None and comments:
            result = await db.execute(
                select(CommentLike.comment_id).where(
                    CommentLike.user_id == viewer.id,
                    CommentLike.comment_id.in_([c.id for c in comments]),
                )
            )
            liked = set(result.scalars().all())
        return [CommentOut.from_comment(c, c.id in liked) for c in comments]

    async def _recount(self, db: AsyncSession, post: Post, parent: Optional[Comment]) -> None:
        post.comments_count = await db.scalar(
            select(func.count()).select_from(Comment).where(
                Comment.post_id == post.id, Comment.parent_id.is_(None)
            )
        ) or 0
        if parent is not None:
            parent.replies_count = await db.scalar(
                select(func.count()).select_from(Comment).where(Comment.parent_id == parent.id)
            ) or 0

    # ── Listings ──────────────────────────────────────────────────────────

    async def for_post(self, db: AsyncSession, post_id: uuid.UUID, page: int, limit: int) -> Page[Comment]:
        await post_service.get_post(db, post_id)
        conditions = [Comment.post_id == post_id, Comment.parent_id.is_(None)]
        total = await db.scalar(select(func.count()).select_from(Comment).where(*conditions))
        result = await db.execute(
            select(Comment)
            .where(*conditions)
            .order_by(Comment.is_pinned.desc(), Comment.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return Page(list(result.scalars().unique().all()), total or 0, page, limit)

    async def replies(self, db: AsyncSession, comment_id: uuid.UUID, page: int, limit: int) -> Page[Comment]:
        await self.get_comment(db, comment_id)
        conditions = [Comment.parent_id == comment_id]
        total = await db.scalar(select(func.count()).select_from(Comment).where(*conditions))
        result = await db.execute(
            select(Comment)
            .where(*conditions)
            .order_by(Comment.created_at.asc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return Page(list(result.scalars().unique().all()), total or 0, page, limit)

    # ── CRUD ──────────────────────────────────────────────────────────────

    async def create(self, db: AsyncSession, author: User, post_id: uuid.UUID, data: CommentCreate) -> Comment:
        post = await post_service.get_post(db, post_id)
        parent = None
        if data.parent_comment_id is not None:
            parent = await db.get(Comment, data.parent_comment_id)
            if parent is None or parent.post_id != post.id:
                raise NotFoundError(message="Parent comment not found", resource="comment")

        comment = Comment(post_id=post.id, author=author, parent_id=parent.id if parent else None, content=data.content)
        db.add(comment)
        await db.flush()
        await self._recount(db, post, parent)
        await db.flush()
        logger.info("Comment %s on post %s by %s", comment.id, post.id, author.username)
        return comment

    async def update(self, db: AsyncSession, author: User, comment_id: uuid.UUID, content: str) -> Comment:
        comment = await self._owned(db, author, comment_id)
        comment.content = content
        comment.updated_at = utcnow()
        await db.flush()
        return comment

    async def delete_comment(self, db: AsyncSession, author: User, comment_id: uuid.UUID) -> None:
        """Delete a comment together with its replies."""
        comment = await self._owned(db, author, comment_id)
        post = await post_service.get_post(db, comment.post_id)
        parent = await db.get(Comment, comment.parent_id) if comment.parent_id else None

        doomed = [comment.id]
        result = await db.execute(select(Comment.id).where(Comment.parent_id == comment.id))
        doomed.extend(result.scalars().all())

        await db.execute(delete(CommentLike).where(CommentLike.comment_id.in_(doomed)))
        await db.execute(delete(Comment).where(Comment.parent_id == comment.id))
        await db.delete(comment)
        await db.flush()
        await self._recount(db, post, parent)
        await db.flush()

    # ── Interactions ──────────────────────────────────────────────────────

    async def toggle_like(self, db: AsyncSession, user: User, comment_id: uuid.UUID) -> LikeState:
        comment = await self.get_comment(db, comment_id)
        existing = await db.get(CommentLike, (comment.id, user.id))
        if existing is None:
            db.add(CommentLike(comment_id=comment.id, user_id=user.id))
        else:
            await db.delete(existing)
        await db.flush()
        comment.likes_count = await db.scalar(
            select(func.count()).select_from(CommentLike).where(CommentLike.comment_id == comment.id)
        ) or 0
        await db.flush()
        return LikeState(is_liked=existing is None, likes_count=comment.likes_count)

    async def toggle_pin(self, db: AsyncSession, user: User, comment_id: uuid.UUID) -> PinState:
        comment = await self.get_comment(db, comment_id)
        post = await post_service.get_post(db, comment.post_id)
        if post.author_id != user.id:
            raise ForbiddenError("Only post author can pin comments")
        comment.is_pinned = not comment.is_pinned
        await db.flush()
        return PinState(is_pinned=comment.is_pinned)


# ── Singleton Instance ────────────────────────────────────────────────────
comment_service = CommentService()
