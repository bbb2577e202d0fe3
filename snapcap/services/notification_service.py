"""
SnapCap Backend: Notification Service
=======================================

What:  Creation rules for notifications and the reads behind
       /api/notifications.
Why:   Two creation rules hold for every producer (gateway events, chat):
         1. No notification when recipient == source user
         2. An identical notification (recipient, source, type, targets)
            created within `notification_dedupe_minutes` is reused, so a
            client that re-emits an interaction does not spam the recipient
"""

import logging
import uuid
from datetime import timedelta
from typing import Optional, Tuple

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from snapcap.config import settings
from snapcap.database import utcnow
from snapcap.exceptions import ForbiddenError, NotFoundError, ValidationError
from snapcap.models.notification import NOTIFICATION_TYPES, Notification
from snapcap.models.user import User
from snapcap.schemas.common import Page

logger = logging.getLogger(__name__)

MESSAGE_TEMPLATES = {
    "like": "{username} liked your post",
    "comment": "{username} commented on your post",
    "follow": "{username} started following you",
    "mention": "{username} mentioned you",
    "story_view": "{username} viewed your story",
    "duet": "{username} created a duet of your post",
    "message": "{username} sent you a message",
}

TARGET_FIELDS = ("post_id", "comment_id", "story_id", "duet_id", "message_id")


def notification_text(kind: str, username: str) -> str:
    return MESSAGE_TEMPLATES[kind].format(username=username)


class NotificationService:
    async def create(
        self,
        db: AsyncSession,
        recipient_id: uuid.UUID,
        from_user: User,
        kind: str,
        post_id: Optional[uuid.UUID] = None,
        comment_id: Optional[uuid.UUID] = None,
        story_id: Optional[uuid.UUID] = None,
        duet_id: Optional[uuid.UUID] = None,
        message_id: Optional[uuid.UUID] = None,
    ) -> Optional[Notification]:
        """
        Persist a notification for `recipient_id`.

        Returns:
            The new (or reused) Notification, or None when suppressed
        """
        if kind not in NOTIFICATION_TYPES:
            raise ValidationError(message="Invalid notification type", field="type")
        if recipient_id == from_user.id:
            return None

        targets = {
            "post_id": post_id,
            "comment_id": comment_id,
            "story_id": story_id,
            "duet_id": duet_id,
            "message_id": message_id,
        }

        if settings.notification_dedupe_minutes > 0:
            since = utcnow() - timedelta(minutes=settings.notification_dedupe_minutes)
            query = select(Notification).where(
                Notification.user_id == recipient_id,
                Notification.from_user_id == from_user.id,
                Notification.type == kind,
                Notification.created_at >= since,
            )
            for field in TARGET_FIELDS:
                column = getattr(Notification, field)
                value = targets[field]
                query = query.where(column.is_(None) if value is None else column == value)
            existing = (await db.execute(query.limit(1))).scalars().first()
            if existing is not None:
                logger.debug("Reusing notification %s (%s)", existing.id, kind)
                return existing

        notification = Notification(
            user_id=recipient_id,
            from_user=from_user,
            type=kind,
            message_text=notification_text(kind, from_user.username),
            **targets,
        )
        db.add(notification)
        await db.flush()
        logger.info("Notification %s: %s -> %s", kind, from_user.username, recipient_id)
        return notification

    # ── Reads ─────────────────────────────────────────────────────────────

    async def unread_count(self, db: AsyncSession, user_id: uuid.UUID) -> int:
        count = await db.scalar(
            select(func.count())
            .select_from(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        )
        return count or 0

    async def list_for_user(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        page: int,
        limit: int,
        kind: Optional[str] = None,
    ) -> Page[Notification]:
        if kind is not None and kind not in NOTIFICATION_TYPES:
            raise ValidationError(message="Invalid notification type", field="type")

        conditions = [Notification.user_id == user_id]
        if kind is not None:
            conditions.append(Notification.type == kind)

        total = await db.scalar(select(func.count()).select_from(Notification).where(*conditions))
        result = await db.execute(
            select(Notification)
            .where(*conditions)
            .order_by(Notification.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return Page(list(result.scalars().all()), total or 0, page, limit)

    async def get_owned(self, db: AsyncSession, user_id: uuid.UUID, notification_id: uuid.UUID) -> Notification:
        notification = await db.get(Notification, notification_id)
        if notification is None:
            raise NotFoundError(message="Notification not found", resource="notification", resource_id=str(notification_id))
        if notification.user_id != user_id:
            raise ForbiddenError("Access denied to this notification")
        return notification

    # ── Writes ────────────────────────────────────────────────────────────

    async def mark_read(self, db: AsyncSession, user_id: uuid.UUID, notification_id: uuid.UUID) -> Tuple[Notification, bool]:
        """Returns (notification, was it unread before)."""
        notification = await self.get_owned(db, user_id, notification_id)
        was_unread = not notification.is_read
        if was_unread:
            notification.is_read = True
            notification.read_at = utcnow()
            await db.flush()
        return notification, was_unread

    async def mark_all_read(self, db: AsyncSession, user_id: uuid.UUID) -> int:
        result = await db.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            .values(is_read=True, read_at=utcnow())
        )
        return result.rowcount or 0

    async def delete_notification(self, db: AsyncSession, user_id: uuid.UUID, notification_id: uuid.UUID) -> None:
        await self.get_owned(db, user_id, notification_id)
        await db.execute(delete(Notification).where(Notification.id == notification_id))


# ── Singleton Instance ────────────────────────────────────────────────────
notification_service = NotificationService()
