"""
SnapCap Backend: Post, Comment and Duet Models
================================================

What:  ORM models for the permanent feed content and the interactions on it.
Why:   Engagement counters live on the row (likes_count, comments_count, ...)
       so feed pages serialize without per-post COUNT queries. The counters
       are always recomputed from the association tables inside the same
       transaction as the change, never incremented blindly, which keeps a
       repeated like from counting twice.
Who:   post_service, comment_service, duet_service, search_service.

Index choices:
    - (author_id, created_at): profile grids and the follow feed
    - created_at: public feed, trending window
    - comments (post_id, parent_id): top-level comment listing
"""

import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from snapcap.database import Base, utcnow
from snapcap.models.user import User


class Post(Base):
    """
    A feed post: one media item, a caption, hashtags and an optional place.

    Lifecycle:
        1. Created by POST /api/posts after the media is stored
        2. Counters updated by likes, comments, shares, duets, views
        3. Deleted by its author (comments and saved rows go with it)
    """

    __tablename__ = "posts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    author_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    image: Mapped[str] = mapped_column(String(500), nullable=False)
    media_public_id: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True,
        comment="Storage id used to delete the media with the post",
    )
    media_type: Mapped[str] = mapped_column(String(10), nullable=False, default="image")
    caption: Mapped[str] = mapped_column(String(500), nullable=False)
    hashtags: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)

    location_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    likes_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    comments_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    shares_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    duets_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    views: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    # Joined eager load: every serialized post embeds its author summary
    author: Mapped[User] = relationship(User, lazy="joined")

    __table_args__ = (
        Index("ix_posts_author_created", "author_id", "created_at"),
        Index("ix_posts_created_at", "created_at"),
    )

    @property
    def engagement(self) -> int:
        """Ranking score for the trending listing."""
        return self.likes_count + self.comments_count + self.shares_count

    def __repr__(self) -> str:
        return f"<Post(id={self.id}, author_id={self.author_id}, likes={self.likes_count})>"


class PostLike(Base):
    __tablename__ = "post_likes"

    post_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("posts.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


class Comment(Base):
    """
    A comment on a post. Replies point at their parent through parent_id;
    only top-level comments count towards the post's comments_count.
    """

    __tablename__ = "comments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    post_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False
    )
    author_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    parent_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("comments.id", ondelete="CASCADE"), nullable=True
    )
    content: Mapped[str] = mapped_column(String(500), nullable=False)
    is_pinned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    likes_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    replies_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    author: Mapped[User] = relationship(User, lazy="joined")

    __table_args__ = (
        Index("ix_comments_post_parent", "post_id", "parent_id"),
    )

    def __repr__(self) -> str:
        return f"<Comment(id={self.id}, post_id={self.post_id})>"


class CommentLike(Base):
    __tablename__ = "comment_likes"

    comment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("comments.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


class Duet(Base):
    """
    A textual (plus media) response to someone else's post.

    The response is also published as an ordinary post authored by the duet
    author (response_post_id) so it shows up in feeds; deleting the duet
    deletes that post too.
    """

    __tablename__ = "duets"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    original_post_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False
    )
    response_post_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("posts.id", ondelete="SET NULL"), nullable=True
    )
    author_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    response: Mapped[str] = mapped_column(String(1000), nullable=False)
    likes_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    author: Mapped[User] = relationship(User, lazy="joined")
    original_post: Mapped[Post] = relationship(
        Post, foreign_keys=[original_post_id], lazy="joined"
    )
    response_post: Mapped[Optional[Post]] = relationship(
        Post, foreign_keys=[response_post_id], lazy="joined"
    )

    __table_args__ = (
        Index("ix_duets_original_post", "original_post_id"),
        Index("ix_duets_author_created", "author_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Duet(id={self.id}, original_post_id={self.original_post_id})>"


class DuetLike(Base):
    __tablename__ = "duet_likes"

    duet_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("duets.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
