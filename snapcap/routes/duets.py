"""
SnapCap Backend: Duet Routes
==============================
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from snapcap.database import get_db_session
from snapcap.dependencies import PageParams, build_model, get_current_user, optional_user, page_params
from snapcap.exceptions import ValidationError
from snapcap.models.user import User
from snapcap.schemas.common import Envelope, MessageEnvelope, ok
from snapcap.schemas.post import DuetList, DuetOut, DuetResponseIn, LikeState
from snapcap.services.duet_service import duet_service
from snapcap.services.storage_service import POST, storage_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/duets", tags=["Duets"])


async def _one(db: AsyncSession, duet, viewer: Optional[User]) -> DuetOut:
    return (await duet_service.to_out(db, [duet], viewer))[0]


async def _page(db: AsyncSession, page, viewer: Optional[User]) -> DuetList:
    return DuetList(duets=await duet_service.to_out(db, page.items, viewer), pagination=page.pagination)


@router.get("", response_model=Envelope[DuetList])
async def list_duets(
    paging: PageParams = Depends(page_params),
    viewer: Optional[User] = Depends(optional_user),
    db: AsyncSession = Depends(get_db_session),
):
    return ok(await _page(db, await duet_service.list_all(db, paging.page, paging.limit), viewer))


@router.get("/post/{post_id}", response_model=Envelope[DuetList], summary="Duets answering a post")
async def duets_for_post(
    post_id: uuid.UUID,
    paging: PageParams = Depends(page_params),
    viewer: Optional[User] = Depends(optional_user),
    db: AsyncSession = Depends(get_db_session),
):
    return ok(await _page(db, await duet_service.for_post(db, post_id, paging.page, paging.limit), viewer))


@router.post("/post/{post_id}", status_code=201, response_model=Envelope[DuetOut], summary="Answer a post")
async def create_duet(
    post_id: uuid.UUID,
    image: Optional[UploadFile] = File(default=None, description="Image or video, max 50MB"),
    response: str = Form(default=""),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    data = build_model(DuetResponseIn, response=response)
    if image is None:
        raise ValidationError(message="Response image is required", field="image")
    media = await storage_service.save_upload(image, POST)
    duet = await duet_service.create(db, user, post_id, data.response, media)
    return ok(await _one(db, duet, user), "Duet created successfully")


@router.get("/user/{user_id}", response_model=Envelope[DuetList])
async def duets_for_user(
    user_id: uuid.UUID,
    paging: PageParams = Depends(page_params),
    viewer: Optional[User] = Depends(optional_user),
    db: AsyncSession = Depends(get_db_session),
):
    return ok(await _page(db, await duet_service.for_user(db, user_id, paging.page, paging.limit), viewer))


@router.get("/{duet_id}", response_model=Envelope[DuetOut])
async def get_duet(
    duet_id: uuid.UUID,
    viewer: Optional[User] = Depends(optional_user),
    db: AsyncSession = Depends(get_db_session),
):
    return ok(await _one(db, await duet_service.get_duet(db, duet_id), viewer))


@router.put("/{duet_id}", response_model=Envelope[DuetOut])
async def update_duet(
    duet_id: uuid.UUID,
    body: DuetResponseIn,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    duet = await duet_service.update(db, user, duet_id, body.response)
    return ok(await _one(db, duet, user), "Duet updated successfully")


@router.delete("/{duet_id}", response_model=MessageEnvelope)
async def delete_duet(
    duet_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await duet_service.delete_duet(db, user, duet_id)
    return MessageEnvelope(message="Duet deleted successfully")


@router.post("/{duet_id}/like", response_model=Envelope[LikeState])
async def toggle_like(
    duet_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    state = await duet_service.toggle_like(db, user, duet_id)
    return ok(state, "Duet liked" if state.is_liked else "Duet unliked")
