"""
SnapCap Backend: User and Social Graph Service
================================================

What:  Profiles, follows, blocks and the "lat,lng" location field.
Why:   Every other service asks the same graph questions (is A following B,
       has either blocked the other, how many followers) so they live here.
How:   Follow and Block rows have composite primary keys; following twice is
       a no-op, never a duplicate row.
"""

import logging
import uuid
from typing import List, Optional, Tuple

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from snapcap.database import utcnow
from snapcap.exceptions import ForbiddenError, NotFoundError, ValidationError
from snapcap.models.user import Block, Follow, User, parse_coordinates
from snapcap.schemas.common import Page
from snapcap.schemas.user import (
    BlockState,
    Coordinates,
    FollowState,
    LocationPayload,
    ProfileUpdate,
    UserPublic,
)
from snapcap.services.storage_service import StoredMedia, storage_service

logger = logging.getLogger(__name__)

NOT_OWNER = "Access denied - not the owner"
BLOCKED_BY_TARGET = "You are blocked by this user"
BLOCKED_TARGET = "You have blocked this user"


class UserService:
    # ── Lookups ───────────────────────────────────────────────────────────

    async def get_user(self, db: AsyncSession, user_id: uuid.UUID) -> User:
        user = await db.get(User, user_id)
        if user is None:
            raise NotFoundError(message="User not found", resource="user", resource_id=str(user_id))
        return user

    async def follow_counts(self, db: AsyncSession, user_id: uuid.UUID) -> Tuple[int, int]:
        """Returns (followers, following)."""
        followers = await db.scalar(
            select(func.count()).select_from(Follow).where(Follow.followed_id == user_id)
        )
        following = await db.scalar(
            select(func.count()).select_from(Follow).where(Follow.follower_id == user_id)
        )
        return followers or 0, following or 0

    async def is_following(self, db: AsyncSession, follower_id: uuid.UUID, followed_id: uuid.UUID) -> bool:
        row = await db.get(Follow, (follower_id, followed_id))
        return row is not None

    async def following_ids(self, db: AsyncSession, user_id: uuid.UUID) -> List[uuid.UUID]:
        result = await db.execute(select(Follow.followed_id).where(Follow.follower_id == user_id))
        return list(result.scalars().all())

    async def ensure_not_blocked(self, db: AsyncSession, viewer_id: uuid.UUID, target_id: uuid.UUID) -> None:
        """
        Raises:
            ForbiddenError if either user has blocked the other
        """
        if viewer_id == target_id:
            return
        if await db.get(Block, (target_id, viewer_id)) is not None:
            raise ForbiddenError(BLOCKED_BY_TARGET)
        if await db.get(Block, (viewer_id, target_id)) is not None:
            raise ForbiddenError(BLOCKED_TARGET)

    # ── Profiles ──────────────────────────────────────────────────────────

    async def get_profile(
        self, db: AsyncSession, user_id: uuid.UUID, viewer: Optional[User] = None
    ) -> UserPublic:
        user = await self.get_user(db, user_id)
        is_following = None
        if viewer is not None:
            await self.ensure_not_blocked(db, viewer.id, user.id)
            is_following = await self.is_following(db, viewer.id, user.id)
        followers, following = await self.follow_counts(db, user.id)
        return UserPublic.from_user(user, followers, following, is_following)

    async def update_profile(
        self, db: AsyncSession, caller: User, user_id: uuid.UUID, data: ProfileUpdate
    ) -> User:
        if caller.id != user_id:
            raise ForbiddenError(NOT_OWNER)
        for field, value in data.model_dump(exclude_unset=True).items():
            if value is not None:
                setattr(caller, field, value)
        caller.updated_at = utcnow()
        await db.flush()
        logger.info("Profile updated: %s", caller.username)
        return caller

    async def update_avatar(
        self, db: AsyncSession, caller: User, user_id: uuid.UUID, media: StoredMedia
    ) -> User:
        if caller.id != user_id:
            await storage_service.delete(media.public_id)
            raise ForbiddenError(NOT_OWNER)
        caller.avatar = media.url
        await db.flush()
        return caller

    # ── Follow Graph ──────────────────────────────────────────────────────

    async def follow(self, db: AsyncSession, follower: User, target_id: uuid.UUID) -> FollowState:
        if follower.id == target_id:
            raise ValidationError(message="You cannot follow yourself", field="id")
        target = await self.get_user(db, target_id)
        await self.ensure_not_blocked(db, follower.id, target.id)

        if not await self.is_following(db, follower.id, target.id):
            db.add(Follow(follower_id=follower.id, followed_id=target.id))
            await db.flush()
            logger.info("%s followed %s", follower.username, target.username)

        followers, _ = await self.follow_counts(db, target.id)
        return FollowState(is_following=True, followers_count=followers)

    async def unfollow(self, db: AsyncSession, follower: User, target_id: uuid.UUID) -> FollowState:
        target = await self.get_user(db, target_id)
        await db.execute(
            delete(Follow).where(Follow.follower_id == follower.id, Follow.followed_id == target.id)
        )
        followers, _ = await self.follow_counts(db, target.id)
        return FollowState(is_following=False, followers_count=followers)

    async def _list_related(
        self, db: AsyncSession, user_id: uuid.UUID, page: int, limit: int, followers: bool
    ) -> Page[User]:
        await self.get_user(db, user_id)
        if followers:
            join_on, match = Follow.follower_id, Follow.followed_id
        else:
            join_on, match = Follow.followed_id, Follow.follower_id

        total = await db.scalar(select(func.count()).select_from(Follow).where(match == user_id))
        result = await db.execute(
            select(User)
            .join(Follow, join_on == User.id)
            .where(match == user_id)
            .order_by(Follow.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return Page(list(result.scalars().unique().all()), total or 0, page, limit)

    async def followers(self, db: AsyncSession, user_id: uuid.UUID, page: int, limit: int) -> Page[User]:
        return await self._list_related(db, user_id, page, limit, followers=True)

    async def following(self, db: AsyncSession, user_id: uuid.UUID, page: int, limit: int) -> Page[User]:
        return await self._list_related(db, user_id, page, limit, followers=False)

    # ── Blocks ────────────────────────────────────────────────────────────

    async def block(self, db: AsyncSession, blocker: User, target_id: uuid.UUID) -> BlockState:
        """Blocking also severs any follow relation in both directions."""
        if blocker.id == target_id:
            raise ValidationError(message="You cannot block yourself", field="id")
        target = await self.get_user(db, target_id)
        if await db.get(Block, (blocker.id, target.id)) is None:
            db.add(Block(blocker_id=blocker.id, blocked_id=target.id))
        await db.execute(
            delete(Follow).where(
                or_(
                    (Follow.follower_id == blocker.id) & (Follow.followed_id == target.id),
                    (Follow.follower_id == target.id) & (Follow.followed_id == blocker.id),
                )
            )
        )
        await db.flush()
        logger.info("%s blocked %s", blocker.username, target.username)
        return BlockState(is_blocked=True)

    async def unblock(self, db: AsyncSession, blocker: User, target_id: uuid.UUID) -> BlockState:
        await self.get_user(db, target_id)
        await db.execute(
            delete(Block).where(Block.blocker_id == blocker.id, Block.blocked_id == target_id)
        )
        return BlockState(is_blocked=False)

    # ── Location ──────────────────────────────────────────────────────────

    async def get_location(self, db: AsyncSession, user_id: uuid.UUID) -> LocationPayload:
        user = await self.get_user(db, user_id)
        coords = parse_coordinates(user.location)
        return LocationPayload(
            user_id=user.id,
            location=Coordinates(**coords) if coords else None,
            raw=user.location,
            last_seen=user.last_seen,
            is_online=user.is_online,
        )

    async def set_location(
        self, db: AsyncSession, caller: User, user_id: uuid.UUID, lat: float, lng: float
    ) -> LocationPayload:
        if caller.id != user_id:
            raise ForbiddenError(NOT_OWNER)
        caller.location = f"{lat},{lng}"
        caller.last_seen = utcnow()
        await db.flush()
        return await self.get_location(db, user_id)

    # ── Presence ──────────────────────────────────────────────────────────

    async def set_presence(self, db: AsyncSession, user_id: uuid.UUID, online: bool) -> Optional[User]:
        user = await db.get(User, user_id)
        if user is None:
            return None
        user.is_online = online
        user.last_seen = utcnow()
        await db.flush()
        return user


# ── Singleton Instance ────────────────────────────────────────────────────
user_service = UserService()
