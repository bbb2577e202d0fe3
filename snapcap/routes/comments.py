"""
SnapCap Backend: Comment Routes
=================================
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from snapcap.database import get_db_session
from snapcap.dependencies import PageParams, get_current_user, optional_user, page_params
from snapcap.models.user import User
from snapcap.schemas.common import Envelope, MessageEnvelope, ok
from snapcap.schemas.post import CommentCreate, CommentList, CommentOut, CommentUpdate, LikeState, PinState
from snapcap.services.comment_service import comment_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/comments", tags=["Comments"])


async def _one(db: AsyncSession, comment, viewer: Optional[User]) -> CommentOut:
    return (await comment_service.to_out(db, [comment], viewer))[0]


@router.get("/post/{post_id}", response_model=Envelope[CommentList], summary="Top-level comments of a post")
async def list_for_post(
    post_id: uuid.UUID,
    paging: PageParams = Depends(page_params),
    viewer: Optional[User] = Depends(optional_user),
    db: AsyncSession = Depends(get_db_session),
):
    page = await comment_service.for_post(db, post_id, paging.page, paging.limit)
    return ok(CommentList(comments=await comment_service.to_out(db, page.items, viewer), pagination=page.pagination))


@router.post("/post/{post_id}", status_code=201, response_model=Envelope[CommentOut], summary="Comment or reply")
async def create_comment(
    post_id: uuid.UUID,
    body: CommentCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    comment = await comment_service.create(db, user, post_id, body)
    return ok(await _one(db, comment, user), "Comment created successfully")


@router.get("/{comment_id}", response_model=Envelope[CommentOut])
async def get_comment(
    comment_id: uuid.UUID,
    viewer: Optional[User] = Depends(optional_user),
    db: AsyncSession = Depends(get_db_session),
):
    comment = await comment_service.get_comment(db, comment_id)
    return ok(await _one(db, comment, viewer))


@router.put("/{comment_id}", response_model=Envelope[CommentOut])
async def update_comment(
    comment_id: uuid.UUID,
    body: CommentUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    comment = await comment_service.update(db, user, comment_id, body.content)
    return ok(await _one(db, comment, user), "Comment updated successfully")


@router.delete("/{comment_id}", response_model=MessageEnvelope)
async def delete_comment(
    comment_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await comment_service.delete_comment(db, user, comment_id)
    return MessageEnvelope(message="Comment deleted successfully")


@router.post("/{comment_id}/like", response_model=Envelope[LikeState])
async def toggle_like(
    comment_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    state = await comment_service.toggle_like(db, user, comment_id)
    return ok(state, "Comment liked" if state.is_liked else "Comment unliked")


@router.post("/{comment_id}/pin", response_model=Envelope[PinState])
async def toggle_pin(
    comment_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    state = await comment_service.toggle_pin(db, user, comment_id)
    return ok(state, "Comment pinned" if state.is_pinned else "Comment unpinned")


@router.get("/{comment_id}/replies", response_model=Envelope[CommentList])
async def replies(
    comment_id: uuid.UUID,
    paging: PageParams = Depends(page_params),
    viewer: Optional[User] = Depends(optional_user),
    db: AsyncSession = Depends(get_db_session),
):
    page = await comment_service.replies(db, comment_id, paging.page, paging.limit)
    return ok(CommentList(comments=await comment_service.to_out(db, page.items, viewer), pagination=page.pagination))
