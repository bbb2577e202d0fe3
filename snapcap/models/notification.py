"""
SnapCap Backend: Notification Model
=====================================

What:  Persistent record of an interaction aimed at a user.
Why:   Realtime delivery is at-most-once per connected session; this row is
       the durable copy a client fetches later through REST.
Who:   notification_service (creation rules), the realtime gateway and the
       chat service (creation), /api/notifications (reads).

Target references (post/comment/story/duet/message) are plain UUID columns
without foreign keys: a notification outlives the thing it pointed at and
the client simply gets a dangling id.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from snapcap.database import Base, utcnow
from snapcap.models.user import User

NOTIFICATION_TYPES = ("like", "comment", "follow", "mention", "story_view", "duet", "message")


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        comment="Recipient",
    )
    from_user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False)

    post_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    comment_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    story_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    duet_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    message_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    message_text: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    from_user: Mapped[User] = relationship(User, foreign_keys=[from_user_id], lazy="joined")

    __table_args__ = (
        Index("ix_notifications_user_created", "user_id", "created_at"),
        Index("ix_notifications_user_read", "user_id", "is_read"),
    )

    def __repr__(self) -> str:
        return (
            f"<Notification(id={self.id}, type='{self.type}', "
            f"user_id={self.user_id}, is_read={self.is_read})>"
        )
