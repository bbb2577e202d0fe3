"""
SnapCap Backend: Post Service
===============================

What:  Feed queries, post CRUD and the like/save/share interactions.
Why:   Counters on the post row are recomputed from the association tables
       after every change, so calling like twice leaves likes_count where a
       single call left it.
How:   All listings return `Page[Post]`; `to_out()` adds the caller's
       isLiked/isSaved flags with two IN queries per page.

Media contract:
    The route stores the upload first and hands the StoredMedia in. If the
    insert fails the file is deleted again, so a failed create leaves
    neither a row nor an orphaned file.
"""

import logging
import uuid
from datetime import timedelta
from typing import Iterable, List, Optional, Set

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from snapcap.database import utcnow
from snapcap.exceptions import DatabaseError, NotFoundError
from snapcap.models.post import Comment, CommentLike, Duet, DuetLike, Post, PostLike
from snapcap.models.user import SavedPost, User
from snapcap.schemas.common import Page
from snapcap.schemas.post import LikeState, PostCreate, PostOut, PostUpdate, SaveState, ShareState
from snapcap.services.storage_service import StoredMedia, storage_service
from snapcap.services.user_service import user_service

logger = logging.getLogger(__name__)

POST_NOT_FOUND = "Post not found"
NOT_FOUND_OR_NOT_AUTHORIZED = "Post not found or not authorized"
TRENDING_DAYS = 7


class PostService:
    # ── Helpers ───────────────────────────────────────────────────────────

    async def get_post(self, db: AsyncSession, post_id: uuid.UUID) -> Post:
        post = await db.get(Post, post_id)
        if post is None:
            raise NotFoundError(message=POST_NOT_FOUND, resource="post", resource_id=str(post_id))
        return post

    async def _owned_post(self, db: AsyncSession, author: User, post_id: uuid.UUID) -> Post:
        post = await db.get(Post, post_id)
        if post is None or post.author_id != author.id:
            raise NotFoundError(message=NOT_FOUND_OR_NOT_AUTHORIZED, resource="post", resource_id=str(post_id))
        return post

    async def liked_ids(self, db: AsyncSession, user_id: uuid.UUID, post_ids: Iterable[uuid.UUID]) -> Set[uuid.UUID]:
        ids = list(post_ids)
        if not ids:
            return set()
        result = await db.execute(
            select(PostLike.post_id).where(PostLike.user_id == user_id, PostLike.post_id.in_(ids))
        )
        return set(result.scalars().all())

    async def saved_ids(self, db: AsyncSession, user_id: uuid.UUID, post_ids: Iterable[uuid.UUID]) -> Set[uuid.UUID]:
        ids = list(post_ids)
        if not ids:
            return set()
        result = await db.execute(
            select(SavedPost.post_id).where(SavedPost.user_id == user_id, SavedPost.post_id.in_(ids))
        )
        return set(result.scalars().all())

    async def to_out(self, db: AsyncSession, posts: List[Post], viewer: Optional[User] = None) -> List[PostOut]:
        if viewer is None:
            return [PostOut.from_post(p) for p in posts]
        ids = [p.id for p in posts]
        liked = await self.liked_ids(db, viewer.id, ids)
        saved = await self.saved_ids(db, viewer.id, ids)
        return [PostOut.from_post(p, p.id in liked, p.id in saved) for p in posts]

    async def _page(self, db: AsyncSession, conditions, order_by, page: int, limit: int) -> Page[Post]:
        total = await db.scalar(select(func.count()).select_from(Post).where(*conditions))
        result = await db.execute(
            select(Post).where(*conditions).order_by(*order_by).offset((page - 1) * limit).limit(limit)
        )
        return Page(list(result.scalars().unique().all()), total or 0, page, limit)

    async def _recount_likes(self, db: AsyncSession, post: Post) -> int:
        post.likes_count = await db.scalar(
            select(func.count()).select_from(PostLike).where(PostLike.post_id == post.id)
        ) or 0
        return post.likes_count

    # ── Listings ──────────────────────────────────────────────────────────

    async def feed(self, db: AsyncSession, viewer: Optional[User], page: int, limit: int) -> Page[Post]:
        """
        Authenticated: posts of followed users and the caller, newest first.
        Anonymous: every public post.
        """
        if viewer is None:
            conditions = [Post.is_public.is_(True)]
        else:
            authors = await user_service.following_ids(db, viewer.id)
            authors.append(viewer.id)
            conditions = [Post.author_id.in_(authors)]
        return await self._page(db, conditions, [Post.created_at.desc()], page, limit)

    async def trending(self, db: AsyncSession, page: int, limit: int) -> Page[Post]:
        since = utcnow() - timedelta(days=TRENDING_DAYS)
        conditions = [Post.is_public.is_(True), Post.created_at >= since]
        engagement = Post.likes_count + Post.comments_count + Post.shares_count
        return await self._page(db, conditions, [engagement.desc(), Post.created_at.desc()], page, limit)

    async def explore(self, db: AsyncSession, viewer: Optional[User], page: int, limit: int) -> Page[Post]:
        conditions = [Post.is_public.is_(True)]
        if viewer is not None:
            conditions.append(Post.author_id != viewer.id)
        return await self._page(db, conditions, [Post.views.desc(), Post.created_at.desc()], page, limit)

    async def user_posts(
        self, db: AsyncSession, user_id: uuid.UUID, viewer: Optional[User], page: int, limit: int
    ) -> Page[Post]:
        await user_service.get_user(db, user_id)
        conditions = [Post.author_id == user_id]
        if viewer is None or viewer.id != user_id:
            conditions.append(Post.is_public.is_(True))
        return await self._page(db, conditions, [Post.created_at.desc()], page, limit)

    async def by_hashtag(self, db: AsyncSession, tag: str, page: int, limit: int) -> Page[Post]:
        """Public posts carrying `tag` (case-insensitive), newest first."""
        tag = tag.lstrip("#").lower()
        result = await db.execute(
            select(Post).where(Post.is_public.is_(True)).order_by(Post.created_at.desc())
        )
        matches = [p for p in result.scalars().unique().all() if tag in {h.lower() for h in p.hashtags or []}]
        start = (page - 1) * limit
        return Page(matches[start:start + limit], len(matches), page, limit)

    # ── CRUD ──────────────────────────────────────────────────────────────

    async def create(self, db: AsyncSession, author: User, data: PostCreate, media: StoredMedia) -> Post:
        location = data.location
        post = Post(
            author=author,
            image=media.url,
            media_public_id=media.public_id,
            media_type=media.media_type,
            caption=data.caption,
            hashtags=data.hashtags,
            location_name=location.name if location else None,
            latitude=location.lat if location else None,
            longitude=location.lng if location else None,
            is_public=data.is_public,
        )
        db.add(post)
        try:
            await db.flush()
        except SQLAlchemyError as e:
            await storage_service.delete(media.public_id)
            logger.error("Failed to create post for %s: %s", author.username, e, exc_info=True)
            raise DatabaseError(context={"original_error": type(e).__name__}) from e
        logger.info("Post created: %s by %s", post.id, author.username)
        return post

    async def view(self, db: AsyncSession, post_id: uuid.UUID) -> Post:
        post = await self.get_post(db, post_id)
        post.views += 1
        await db.flush()
        return post

    async def update(self, db: AsyncSession, author: User, post_id: uuid.UUID, data: PostUpdate) -> Post:
        post = await self._owned_post(db, author, post_id)
        if data.caption is not None:
            post.caption = data.caption
        if data.hashtags is not None:
            post.hashtags = data.hashtags
        if data.is_public is not None:
            post.is_public = data.is_public
        if data.location is not None:
            post.location_name = data.location.name
            post.latitude = data.location.lat
            post.longitude = data.location.lng
        post.updated_at = utcnow()
        await db.flush()
        return post

    async def remove(self, db: AsyncSession, post: Post) -> None:
        """Delete a post with its comments, likes, saves and duets."""
        comment_ids = select(Comment.id).where(Comment.post_id == post.id)
        await db.execute(delete(CommentLike).where(CommentLike.comment_id.in_(comment_ids)))
        await db.execute(delete(Comment).where(Comment.post_id == post.id))
        await db.execute(delete(PostLike).where(PostLike.post_id == post.id))
        await db.execute(delete(SavedPost).where(SavedPost.post_id == post.id))

        duet_ids = select(Duet.id).where(
            or_(Duet.original_post_id == post.id, Duet.response_post_id == post.id)
        )
        await db.execute(delete(DuetLike).where(DuetLike.duet_id.in_(duet_ids)))
        await db.execute(delete(Duet).where(Duet.original_post_id == post.id))
        await db.execute(
            update(Duet).where(Duet.response_post_id == post.id).values(response_post_id=None)
        )

        public_id = post.media_public_id
        await db.delete(post)
        await db.flush()
        await storage_service.delete(public_id)

    async def delete_post(self, db: AsyncSession, author: User, post_id: uuid.UUID) -> None:
        post = await self._owned_post(db, author, post_id)
        await self.remove(db, post)
        logger.info("Post deleted: %s", post_id)

    # ── Interactions ──────────────────────────────────────────────────────

    async def set_like(self, db: AsyncSession, user: User, post_id: uuid.UUID, liked: bool) -> LikeState:
        """Bring the like into the requested state; repeating a call changes nothing."""
        post = await self.get_post(db, post_id)
        existing = await db.get(PostLike, (post.id, user.id))
        if liked and existing is None:
            db.add(PostLike(post_id=post.id, user_id=user.id))
        elif not liked and existing is not None:
            await db.delete(existing)
        await db.flush()
        await self._recount_likes(db, post)
        await db.flush()
        return LikeState(is_liked=liked, likes_count=post.likes_count)

    async def toggle_like(self, db: AsyncSession, user: User, post_id: uuid.UUID) -> LikeState:
        post = await self.get_post(db, post_id)
        existing = await db.get(PostLike, (post.id, user.id))
        return await self.set_like(db, user, post.id, liked=existing is None)

    async def toggle_save(self, db: AsyncSession, user: User, post_id: uuid.UUID) -> SaveState:
        post = await self.get_post(db, post_id)
        existing = await db.get(SavedPost, (user.id, post.id))
        if existing is None:
            db.add(SavedPost(user_id=user.id, post_id=post.id))
        else:
            await db.delete(existing)
        await db.flush()
        return SaveState(is_saved=existing is None)

    async def share(self, db: AsyncSession, post_id: uuid.UUID) -> ShareState:
        post = await self.get_post(db, post_id)
        post.shares_count += 1
        await db.flush()
        return ShareState(shares_count=post.shares_count)


# ── Singleton Instance ────────────────────────────────────────────────────
post_service = PostService()
