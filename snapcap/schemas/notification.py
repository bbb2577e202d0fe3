"""
SnapCap Backend: Notification Schemas
=======================================
"""

import uuid
from datetime import datetime
from typing import List, Optional

from snapcap.models.notification import Notification
from snapcap.schemas.common import APIModel, Pagination
from snapcap.schemas.user import UserSummary


class NotificationOut(APIModel):
    id: uuid.UUID
    type: str
    from_user: UserSummary
    post_id: Optional[uuid.UUID] = None
    comment_id: Optional[uuid.UUID] = None
    story_id: Optional[uuid.UUID] = None
    duet_id: Optional[uuid.UUID] = None
    message_id: Optional[uuid.UUID] = None
    message: str
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def from_notification(cls, notification: Notification) -> "NotificationOut":
        return cls(
            id=notification.id,
            type=notification.type,
            from_user=UserSummary.model_validate(notification.from_user),
            post_id=notification.post_id,
            comment_id=notification.comment_id,
            story_id=notification.story_id,
            duet_id=notification.duet_id,
            message_id=notification.message_id,
            message=notification.message_text,
            is_read=notification.is_read,
            read_at=notification.read_at,
            created_at=notification.created_at,
        )


class NotificationList(APIModel):
    notifications: List[NotificationOut]
    unread_count: int
    pagination: Pagination
