"""
SnapCap Backend: User Routes
==============================

/api/users/{id}: profile, avatar, follow graph, blocks, location and the
user's posts. Writes to a profile are owner-only (403 otherwise).
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from snapcap.database import get_db_session
from snapcap.dependencies import PageParams, get_current_user, optional_user, page_params
from snapcap.exceptions import ForbiddenError
from snapcap.models.user import User
from snapcap.schemas.common import Envelope, ok
from snapcap.schemas.post import PostList
from snapcap.schemas.user import (
    BlockState,
    FollowState,
    LocationPayload,
    LocationUpdate,
    ProfileUpdate,
    UserList,
    UserPrivate,
    UserPublic,
    UserSummary,
)
from snapcap.services.post_service import post_service
from snapcap.services.storage_service import AVATAR, storage_service
from snapcap.services.user_service import NOT_OWNER, user_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["Users"])


@router.get("/{user_id}", response_model=Envelope[UserPublic], summary="Public profile")
async def get_profile(
    user_id: uuid.UUID,
    viewer: Optional[User] = Depends(optional_user),
    db: AsyncSession = Depends(get_db_session),
):
    return ok(await user_service.get_profile(db, user_id, viewer))


@router.put("/{user_id}", response_model=Envelope[UserPrivate], summary="Update own profile")
async def update_profile(
    user_id: uuid.UUID,
    body: ProfileUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    updated = await user_service.update_profile(db, user, user_id, body)
    followers, following = await user_service.follow_counts(db, updated.id)
    return ok(UserPrivate.from_user(updated, followers, following), "Profile updated successfully")


@router.post("/{user_id}/avatar", response_model=Envelope[UserPrivate], summary="Upload a new avatar")
async def upload_avatar(
    user_id: uuid.UUID,
    avatar: UploadFile = File(..., description="JPEG or PNG, max 5MB"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    if user.id != user_id:
        raise ForbiddenError(NOT_OWNER)
    media = await storage_service.save_upload(avatar, AVATAR)
    updated = await user_service.update_avatar(db, user, user_id, media)
    followers, following = await user_service.follow_counts(db, updated.id)
    return ok(UserPrivate.from_user(updated, followers, following), "Avatar updated successfully")


# ── Follow graph ──────────────────────────────────────────────────────────


@router.post("/{user_id}/follow", response_model=Envelope[FollowState], summary="Follow a user")
async def follow(
    user_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return ok(await user_service.follow(db, user, user_id), "User followed successfully")


@router.delete("/{user_id}/follow", response_model=Envelope[FollowState], summary="Unfollow a user")
async def unfollow(
    user_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return ok(await user_service.unfollow(db, user, user_id), "User unfollowed successfully")


@router.get("/{user_id}/followers", response_model=Envelope[UserList])
async def followers(
    user_id: uuid.UUID,
    paging: PageParams = Depends(page_params),
    db: AsyncSession = Depends(get_db_session),
):
    page = await user_service.followers(db, user_id, paging.page, paging.limit)
    users = [UserSummary.model_validate(u) for u in page.items]
    return ok(UserList(users=users, pagination=page.pagination))


@router.get("/{user_id}/following", response_model=Envelope[UserList])
async def following(
    user_id: uuid.UUID,
    paging: PageParams = Depends(page_params),
    db: AsyncSession = Depends(get_db_session),
):
    page = await user_service.following(db, user_id, paging.page, paging.limit)
    users = [UserSummary.model_validate(u) for u in page.items]
    return ok(UserList(users=users, pagination=page.pagination))


# ── Blocks ────────────────────────────────────────────────────────────────


@router.post("/{user_id}/block", response_model=Envelope[BlockState], summary="Block a user")
async def block(
    user_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return ok(await user_service.block(db, user, user_id), "User blocked successfully")


@router.delete("/{user_id}/block", response_model=Envelope[BlockState], summary="Unblock a user")
async def unblock(
    user_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return ok(await user_service.unblock(db, user, user_id), "User unblocked successfully")


# ── Location ──────────────────────────────────────────────────────────────


@router.get("/{user_id}/location", response_model=Envelope[LocationPayload])
async def get_location(
    user_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await user_service.ensure_not_blocked(db, user.id, user_id)
    return ok(await user_service.get_location(db, user_id))


@router.put("/{user_id}/location", response_model=Envelope[LocationPayload])
async def set_location(
    user_id: uuid.UUID,
    body: LocationUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    location = await user_service.set_location(db, user, user_id, body.lat, body.lng)
    return ok(location, "Location updated successfully")


# ── Posts ─────────────────────────────────────────────────────────────────


@router.get("/{user_id}/posts", response_model=Envelope[PostList])
async def user_posts(
    user_id: uuid.UUID,
    paging: PageParams = Depends(page_params),
    viewer: Optional[User] = Depends(optional_user),
    db: AsyncSession = Depends(get_db_session),
):
    if viewer is not None:
        await user_service.ensure_not_blocked(db, viewer.id, user_id)
    page = await post_service.user_posts(db, user_id, viewer, paging.page, paging.limit)
    return ok(PostList(posts=await post_service.to_out(db, page.items, viewer), pagination=page.pagination))
