"""
SnapCap Backend: Friend Service
=================================

Friends are the users the caller follows. This service shapes them for the
friends list and the map, and offers chat shortcuts keyed by the friend's
id instead of a conversation id.
"""

import logging
import uuid
from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from snapcap.models.chat import Conversation, Message
from snapcap.models.post import Post
from snapcap.models.user import Follow, User
from snapcap.schemas.common import Page
from snapcap.schemas.user import FriendSummary, LocationPayload
from snapcap.services.chat_service import DEFAULT_MESSAGE_LIMIT, chat_service
from snapcap.services.user_service import user_service

logger = logging.getLogger(__name__)

FRIEND_POSTS_LIMIT = 10


class FriendService:
    async def friends(self, db: AsyncSession, user: User) -> List[FriendSummary]:
        result = await db.execute(
            select(User)
            .join(Follow, Follow.followed_id == User.id)
            .where(Follow.follower_id == user.id)
            .order_by(User.is_online.desc(), User.last_seen.desc())
        )
        friends = []
        for friend in result.scalars().unique().all():
            followers, following = await user_service.follow_counts(db, friend.id)
            friends.append(FriendSummary.from_user(friend, followers, following))
        return friends

    async def posts(self, db: AsyncSession, friend_id: uuid.UUID) -> List[Post]:
        await user_service.get_user(db, friend_id)
        result = await db.execute(
            select(Post)
            .where(Post.author_id == friend_id)
            .order_by(Post.created_at.desc())
            .limit(FRIEND_POSTS_LIMIT)
        )
        return list(result.scalars().unique().all())

    async def location(self, db: AsyncSession, friend_id: uuid.UUID) -> LocationPayload:
        return await user_service.get_location(db, friend_id)

    async def start_chat(self, db: AsyncSession, user: User, friend_id: uuid.UUID) -> Conversation:
        return await chat_service.find_or_create(db, user, friend_id)

    async def messages(
        self, db: AsyncSession, user: User, friend_id: uuid.UUID, page: int, limit: int = DEFAULT_MESSAGE_LIMIT
    ) -> Page[Message]:
        """Messages with a friend; an empty page when no conversation exists yet."""
        await user_service.get_user(db, friend_id)
        conversation = await chat_service.find_by_pair(db, user.id, friend_id)
        if conversation is None:
            return Page([], 0, page, limit)
        return await chat_service.messages(db, user, conversation.id, page, limit)

    async def send(self, db: AsyncSession, user: User, friend_id: uuid.UUID, content: str, message_type: str):
        return await chat_service.send(db, user, friend_id, content, message_type)


# ── Singleton Instance ────────────────────────────────────────────────────
friend_service = FriendService()
