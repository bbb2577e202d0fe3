"""
SnapCap Backend: User and Social Graph Models
===============================================

What:  ORM models for accounts and the relations hanging off an account:
       follows, blocks, saved posts and issued refresh tokens.
Why:   The document model kept follower/following/blocked/saved as arrays on
       the user. Here each is an association table whose composite primary
       key makes "add to set" idempotent at the database level.
Who:   user_service, auth_service, friend_service, search_service, gateway.

Table Design Rationale:
    - username / email unique: duplicate registration surfaces as a
      ConflictError naming the field
    - password_hash: werkzeug salted hash, never serialized
    - location: free text "lat,lng" (the map client writes coordinates here);
      friend_service parses it back into {lat, lng}
    - last_seen: written on disconnect / logout, shown as "5m ago"
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from snapcap.database import Base, utcnow

DEFAULT_AVATAR = "https://images.unsplash.com/photo-1535713875002-d1d0cf377fde?w=150"


class User(Base):
    """
    A registered SnapCap account.

    Lifecycle:
        1. Created by POST /api/auth/register
        2. Mutated by profile edits, logins (online flag), follows
        3. is_online/last_seen flipped by the realtime gateway
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    username: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[str] = mapped_column(String(50), nullable=False)
    avatar: Mapped[str] = mapped_column(String(500), nullable=False, default=DEFAULT_AVATAR)

    # ── Profile ───────────────────────────────────────────────────────────
    bio: Mapped[str] = mapped_column(String(150), nullable=False, default="")
    location: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    website: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    phone: Mapped[str] = mapped_column(String(30), nullable=False, default="")
    is_private: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # ── Presence ──────────────────────────────────────────────────────────
    is_online: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    last_seen: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # ── Settings ──────────────────────────────────────────────────────────
    notifications_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    privacy: Mapped[str] = mapped_column(
        String(10), nullable=False, default="public",
        comment="public | private | friends",
    )
    theme: Mapped[str] = mapped_column(
        String(10), nullable=False, default="auto",
        comment="light | dark | auto",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
        comment="Doubles as the profile's join date",
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username='{self.username}')>"


class Follow(Base):
    """follower_id follows followed_id."""

    __tablename__ = "follows"

    follower_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    followed_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        Index("ix_follows_followed_id", "followed_id"),
    )


class Block(Base):
    """blocker_id has blocked blocked_id; interactions are refused both ways."""

    __tablename__ = "blocks"

    blocker_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    blocked_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


class SavedPost(Base):
    __tablename__ = "saved_posts"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    post_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("posts.id", ondelete="CASCADE"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


class RefreshToken(Base):
    """
    An issued refresh token, stored as a SHA-256 digest.

    Logout deletes the row; refreshing rotates it (old row deleted, new row
    inserted), so a refresh token is single-use.
    """

    __tablename__ = "refresh_tokens"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        Index("ix_refresh_tokens_user_id", "user_id"),
    )

    def __repr__(self) -> str:
        return f"<RefreshToken(user_id={self.user_id}, expires_at={self.expires_at})>"


def parse_coordinates(value: Optional[str]) -> Optional[dict]:
    """
    Parse a "lat,lng" location string into {"lat": float, "lng": float}.

    Returns None for empty strings, place names and out-of-range values.
    """
    if not value or "," not in value:
        return None
    lat_text, _, lng_text = value.partition(",")
    try:
        lat, lng = float(lat_text.strip()), float(lng_text.strip())
    except ValueError:
        return None
    if not (-90 <= lat <= 90 and -180 <= lng <= 180):
        return None
    return {"lat": lat, "lng": lng}
