"""
SnapCap Backend: Notification Routes
======================================

Notifications are created by the realtime gateway; these endpoints are how
a client that was offline catches up on them.
"""

import logging
import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from snapcap.database import get_db_session
from snapcap.dependencies import PageParams, get_current_user, page_params
from snapcap.models.user import User
from snapcap.schemas.chat import UnreadCount
from snapcap.schemas.common import Envelope, MessageEnvelope, ModifiedCount, ok
from snapcap.schemas.notification import NotificationList, NotificationOut
from snapcap.services.notification_service import notification_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])


async def _list(db: AsyncSession, user: User, paging: PageParams, kind=None) -> NotificationList:
    page = await notification_service.list_for_user(db, user.id, paging.page, paging.limit, kind)
    return NotificationList(
        notifications=[NotificationOut.from_notification(n) for n in page.items],
        unread_count=await notification_service.unread_count(db, user.id),
        pagination=page.pagination,
    )


@router.get("", response_model=Envelope[NotificationList])
async def list_notifications(
    paging: PageParams = Depends(page_params),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return ok(await _list(db, user, paging))


@router.get("/unread-count", response_model=Envelope[UnreadCount])
async def unread_count(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db_session)):
    return ok(UnreadCount(unread_count=await notification_service.unread_count(db, user.id)))


@router.put("/read-all", response_model=Envelope[ModifiedCount])
async def read_all(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db_session)):
    count = await notification_service.mark_all_read(db, user.id)
    return ok(ModifiedCount(modified_count=count), "All notifications marked as read")


@router.get("/type/{kind}", response_model=Envelope[NotificationList])
async def list_by_type(
    kind: str,
    paging: PageParams = Depends(page_params),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return ok(await _list(db, user, paging, kind))


@router.get("/{notification_id}", response_model=Envelope[NotificationOut])
async def get_notification(
    notification_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    notification = await notification_service.get_owned(db, user.id, notification_id)
    return ok(NotificationOut.from_notification(notification))


@router.put("/{notification_id}/read", response_model=Envelope[NotificationOut])
async def mark_read(
    notification_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    notification, was_unread = await notification_service.mark_read(db, user.id, notification_id)
    message = "Notification marked as read" if was_unread else "Notification was already read"
    return ok(NotificationOut.from_notification(notification), message)


@router.delete("/{notification_id}", response_model=MessageEnvelope)
async def delete_notification(
    notification_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await notification_service.delete_notification(db, user.id, notification_id)
    return MessageEnvelope(message="Notification deleted successfully")
