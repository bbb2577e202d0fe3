"""
SnapCap Backend: Conversation and Message Models
==================================================

What:  One-to-one conversations and the messages in them.
Why:   A conversation is exactly two participants. The pair is stored in
       sorted order (participant_one_id < participant_two_id) under a unique
       constraint, so find-or-create cannot produce two rows for one pair.
       Unread counters are per participant columns.
Who:   chat_service, friend_service, the `new_message` relay.
"""

import uuid
from datetime import datetime
from typing import Optional, Tuple

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from snapcap.database import Base, utcnow
from snapcap.models.user import User

MESSAGE_TYPES = ("text", "image", "video", "audio", "file")


def ordered_pair(a: uuid.UUID, b: uuid.UUID) -> Tuple[uuid.UUID, uuid.UUID]:
    """Canonical (low, high) ordering of a participant pair."""
    return (a, b) if str(a) < str(b) else (b, a)


class Conversation(Base):
    __tablename__ = "conversations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    participant_one_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    participant_two_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    unread_one: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unread_two: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_message_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    last_message_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    participant_one: Mapped[User] = relationship(
        User, foreign_keys=[participant_one_id], lazy="joined"
    )
    participant_two: Mapped[User] = relationship(
        User, foreign_keys=[participant_two_id], lazy="joined"
    )

    __table_args__ = (
        UniqueConstraint("participant_one_id", "participant_two_id", name="uq_conversation_pair"),
        Index("ix_conversations_last_message_at", "last_message_at"),
    )

    def has_participant(self, user_id: uuid.UUID) -> bool:
        return user_id in (self.participant_one_id, self.participant_two_id)

    def other_participant(self, user_id: uuid.UUID) -> User:
        if user_id == self.participant_one_id:
            return self.participant_two
        return self.participant_one

    def unread_for(self, user_id: uuid.UUID) -> int:
        if user_id == self.participant_one_id:
            return self.unread_one
        return self.unread_two

    def bump_unread(self, receiver_id: uuid.UUID) -> None:
        if receiver_id == self.participant_one_id:
            self.unread_one += 1
        else:
            self.unread_two += 1

    def clear_unread(self, user_id: uuid.UUID) -> None:
        if user_id == self.participant_one_id:
            self.unread_one = 0
        else:
            self.unread_two = 0

    def __repr__(self) -> str:
        return (
            f"<Conversation(id={self.id}, "
            f"pair=({self.participant_one_id}, {self.participant_two_id}))>"
        )


class Message(Base):
    """
    A chat message. Text messages require content; every other type
    requires media_url. is_read only changes through an explicit mark-read.
    """

    __tablename__ = "messages"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    conversation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    sender_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    receiver_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    content: Mapped[str] = mapped_column(String(1000), nullable=False, default="")
    type: Mapped[str] = mapped_column(String(10), nullable=False, default="text")
    media_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    media_public_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    sender: Mapped[User] = relationship(User, foreign_keys=[sender_id], lazy="joined")
    receiver: Mapped[User] = relationship(User, foreign_keys=[receiver_id], lazy="joined")

    __table_args__ = (
        Index("ix_messages_conversation_created", "conversation_id", "created_at"),
        Index("ix_messages_receiver_read", "receiver_id", "is_read"),
    )

    def __repr__(self) -> str:
        return f"<Message(id={self.id}, type='{self.type}', is_read={self.is_read})>"
