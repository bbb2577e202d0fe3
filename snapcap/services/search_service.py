"""
SnapCap Backend: Search Service
=================================

What:  User, post and hashtag search plus trending hashtags.
How:   Case-insensitive LIKE on usernames/display names/bios and captions.
       Hashtags live in a JSON column, so hashtag matching and counting run
       in Python over the candidate posts; that keeps one code path for
       PostgreSQL and SQLite.
"""

import logging
from collections import Counter
from datetime import timedelta
from typing import List, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from snapcap.database import utcnow
from snapcap.exceptions import ValidationError
from snapcap.models.post import Post
from snapcap.models.user import Follow, User
from snapcap.schemas.common import Page
from snapcap.schemas.post import HashtagCount
from snapcap.schemas.user import UserSearchResult
from snapcap.services.post_service import post_service
from snapcap.services.user_service import user_service

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 2
TRENDING_DAYS = 7
TRENDING_LIMIT = 10
GLOBAL_USERS = 5
GLOBAL_POSTS = 10
GLOBAL_HASHTAGS = 5


def require_query(q: Optional[str]) -> str:
    q = (q or "").strip()
    if len(q) < MIN_QUERY_LENGTH:
        raise ValidationError(message="Search query must be at least 2 characters", field="q")
    return q


def _like(q: str) -> str:
    escaped = q.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _count_hashtags(posts: List[Post], needle: Optional[str] = None) -> List[HashtagCount]:
    counts: Counter = Counter()
    for post in posts:
        for tag in {h.lower() for h in post.hashtags or []}:
            if needle is None or needle in tag:
                counts[tag] += 1
    return [HashtagCount(hashtag=tag, count=n) for tag, n in counts.most_common()]


class SearchService:
    async def users(
        self, db: AsyncSession, q: str, viewer: Optional[User], page: int, limit: int
    ) -> Page[UserSearchResult]:
        q = require_query(q)
        pattern = _like(q)
        condition = or_(
            User.username.ilike(pattern, escape="\\"),
            User.display_name.ilike(pattern, escape="\\"),
            User.bio.ilike(pattern, escape="\\"),
        )
        conditions = [condition]
        if viewer is not None:
            conditions.append(User.id != viewer.id)

        result = await db.execute(select(User).where(*conditions).order_by(User.username))
        matches = list(result.scalars().all())
        start = (page - 1) * limit
        window = matches[start:start + limit]

        following = set()
        if viewer is not None and window:
            rows = await db.execute(
                select(Follow.followed_id).where(
                    Follow.follower_id == viewer.id, Follow.followed_id.in_([u.id for u in window])
                )
            )
            following = set(rows.scalars().all())

        items = []
        for user in window:
            followers, following_count = await user_service.follow_counts(db, user.id)
            items.append(
                UserSearchResult(
                    id=user.id,
                    username=user.username,
                    display_name=user.display_name,
                    avatar=user.avatar,
                    is_online=user.is_online,
                    bio=user.bio,
                    last_seen=user.last_seen,
                    is_following=user.id in following,
                    followers_count=followers,
                    following_count=following_count,
                )
            )
        return Page(items, len(matches), page, limit)

    async def posts(self, db: AsyncSession, q: str, page: int, limit: int) -> Page[Post]:
        """Public posts whose caption or hashtags contain `q`."""
        q = require_query(q)
        needle = q.lstrip("#").lower()
        result = await db.execute(
            select(Post).where(Post.is_public.is_(True)).order_by(Post.created_at.desc())
        )
        matches = [
            p for p in result.scalars().unique().all()
            if needle in p.caption.lower() or any(needle in h.lower() for h in p.hashtags or [])
        ]
        start = (page - 1) * limit
        return Page(matches[start:start + limit], len(matches), page, limit)

    async def hashtags(self, db: AsyncSession, q: str, limit: int) -> List[HashtagCount]:
        q = require_query(q)
        result = await db.execute(select(Post).where(Post.is_public.is_(True)))
        return _count_hashtags(list(result.scalars().unique().all()), q.lstrip("#").lower())[:limit]

    async def trending_hashtags(self, db: AsyncSession, limit: int = TRENDING_LIMIT) -> List[HashtagCount]:
        since = utcnow() - timedelta(days=TRENDING_DAYS)
        result = await db.execute(
            select(Post).where(Post.is_public.is_(True), Post.created_at >= since)
        )
        return _count_hashtags(list(result.scalars().unique().all()))[:limit]

    async def hashtag_posts(self, db: AsyncSession, tag: str, page: int, limit: int) -> Page[Post]:
        return await post_service.by_hashtag(db, tag, page, limit)

    async def global_search(self, db: AsyncSession, q: str, viewer: Optional[User]) -> dict:
        """Top matches of every kind: 5 users, 10 posts, 5 hashtags."""
        q = require_query(q)
        users = await self.users(db, q, viewer, 1, GLOBAL_USERS)
        posts = await self.posts(db, q, 1, GLOBAL_POSTS)
        hashtags = await self.hashtags(db, q, GLOBAL_HASHTAGS)
        return {"users": users.items, "posts": posts.items, "hashtags": hashtags}


# ── Singleton Instance ────────────────────────────────────────────────────
search_service = SearchService()
