"""
SnapCap Backend: Story Models
===============================

What:  Ephemeral stories: a story owns an ordered list of items (media plus
       optional caption, music and text overlay) and a set of viewers.
Why:   Stories expire `story_lifetime_hours` after creation. Expiry is a
       timestamp comparison at read time; the cleanup endpoint additionally
       flips is_active so expired rows drop out of indexes.
Who:   story_service, notification fan-out for story views.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from snapcap.database import Base, as_utc, utcnow
from snapcap.models.user import User


class Story(Base):
    __tablename__ = "stories"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    author_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    views_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    author: Mapped[User] = relationship(User, lazy="joined")
    items: Mapped[List["StoryItem"]] = relationship(
        "StoryItem",
        lazy="selectin",
        order_by="StoryItem.position",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_stories_author_active", "author_id", "is_active", "expires_at"),
    )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return as_utc(self.expires_at) <= (now or utcnow())

    def __repr__(self) -> str:
        return f"<Story(id={self.id}, author_id={self.author_id}, items={len(self.items)})>"


class StoryItem(Base):
    """
    One frame of a story.

    music:        {"title", "artist", "preview", "duration"} or null
    text_overlay: {"text", "color", "position": {"x", "y"}, "size"} or null
    """

    __tablename__ = "story_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    story_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("stories.id", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    media_url: Mapped[str] = mapped_column(String(500), nullable=False)
    media_public_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    caption: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    music: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    text_overlay: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


class StoryView(Base):
    __tablename__ = "story_views"

    story_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("stories.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    viewed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
