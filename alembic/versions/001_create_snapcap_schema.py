"""Create SnapCap schema

Revision ID: 001
Revises: None
Create Date: 2026-10-19 00:00:00.000000+00:00

What:  Creates every SnapCap table: accounts and the social graph, posts
       and their interactions, stories, chat, notifications.
How:   Generic `sa.Uuid` / `sa.JSON` / timezone-aware `sa.DateTime` so the
       same revision runs on PostgreSQL and SQLite. Defaults for ids and
       timestamps come from the ORM, not the server.

Rollback: downgrade() drops every table (destructive).
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _ts(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def _user_fk(name: str, primary_key: bool = False, nullable: bool = False) -> sa.Column:
    return sa.Column(
        name,
        sa.Uuid(),
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=primary_key,
        nullable=nullable,
    )


def _counter(name: str) -> sa.Column:
    return sa.Column(name, sa.Integer(), nullable=False, server_default=sa.text("0"))


def upgrade() -> None:
    # ── Accounts and social graph ─────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("username", sa.String(30), nullable=False, unique=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("display_name", sa.String(50), nullable=False),
        sa.Column("avatar", sa.String(500), nullable=False),
        sa.Column("bio", sa.String(150), nullable=False, server_default=""),
        sa.Column("location", sa.String(100), nullable=False, server_default=""),
        sa.Column("website", sa.String(255), nullable=False, server_default=""),
        sa.Column("phone", sa.String(30), nullable=False, server_default=""),
        sa.Column("is_private", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_online", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("last_seen"),
        _counter("streak"),
        sa.Column("notifications_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("privacy", sa.String(10), nullable=False, server_default="public",
                  comment="public | private | friends"),
        sa.Column("theme", sa.String(10), nullable=False, server_default="auto",
                  comment="light | dark | auto"),
        _ts("created_at"),
        _ts("updated_at"),
    )

    op.create_table(
        "follows",
        _user_fk("follower_id", primary_key=True),
        _user_fk("followed_id", primary_key=True),
        _ts("created_at"),
    )
    op.create_index("ix_follows_followed_id", "follows", ["followed_id"])

    op.create_table(
        "blocks",
        _user_fk("blocker_id", primary_key=True),
        _user_fk("blocked_id", primary_key=True),
        _ts("created_at"),
    )

    op.create_table(
        "refresh_tokens",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _user_fk("user_id"),
        sa.Column("token_hash", sa.String(64), nullable=False, unique=True),
        _ts("expires_at"),
        _ts("created_at"),
    )
    op.create_index("ix_refresh_tokens_user_id", "refresh_tokens", ["user_id"])

    # ── Posts, comments, duets ────────────────────────────────────────────
    op.create_table(
        "posts",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _user_fk("author_id"),
        sa.Column("image", sa.String(500), nullable=False),
        sa.Column("media_public_id", sa.String(255), nullable=True),
        sa.Column("media_type", sa.String(10), nullable=False, server_default="image"),
        sa.Column("caption", sa.String(500), nullable=False),
        sa.Column("hashtags", sa.JSON(), nullable=False),
        sa.Column("location_name", sa.String(100), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        _counter("likes_count"),
        _counter("comments_count"),
        _counter("shares_count"),
        _counter("duets_count"),
        _counter("views"),
        _counter("streak"),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.true()),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_posts_author_created", "posts", ["author_id", "created_at"])
    op.create_index("ix_posts_created_at", "posts", ["created_at"])

    op.create_table(
        "saved_posts",
        _user_fk("user_id", primary_key=True),
        sa.Column("post_id", sa.Uuid(), sa.ForeignKey("posts.id", ondelete="CASCADE"), primary_key=True),
        _ts("created_at"),
    )

    op.create_table(
        "post_likes",
        sa.Column("post_id", sa.Uuid(), sa.ForeignKey("posts.id", ondelete="CASCADE"), primary_key=True),
        _user_fk("user_id", primary_key=True),
        _ts("created_at"),
    )

    op.create_table(
        "comments",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("post_id", sa.Uuid(), sa.ForeignKey("posts.id", ondelete="CASCADE"), nullable=False),
        _user_fk("author_id"),
        sa.Column("parent_id", sa.Uuid(), sa.ForeignKey("comments.id", ondelete="CASCADE"), nullable=True),
        sa.Column("content", sa.String(500), nullable=False),
        sa.Column("is_pinned", sa.Boolean(), nullable=False, server_default=sa.false()),
        _counter("likes_count"),
        _counter("replies_count"),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_comments_post_parent", "comments", ["post_id", "parent_id"])

    op.create_table(
        "comment_likes",
        sa.Column("comment_id", sa.Uuid(), sa.ForeignKey("comments.id", ondelete="CASCADE"), primary_key=True),
        _user_fk("user_id", primary_key=True),
        _ts("created_at"),
    )

    op.create_table(
        "duets",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("original_post_id", sa.Uuid(), sa.ForeignKey("posts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("response_post_id", sa.Uuid(), sa.ForeignKey("posts.id", ondelete="SET NULL"), nullable=True),
        _user_fk("author_id"),
        sa.Column("response", sa.String(1000), nullable=False),
        _counter("likes_count"),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_duets_original_post", "duets", ["original_post_id"])
    op.create_index("ix_duets_author_created", "duets", ["author_id", "created_at"])

    op.create_table(
        "duet_likes",
        sa.Column("duet_id", sa.Uuid(), sa.ForeignKey("duets.id", ondelete="CASCADE"), primary_key=True),
        _user_fk("user_id", primary_key=True),
        _ts("created_at"),
    )

    # ── Stories ───────────────────────────────────────────────────────────
    op.create_table(
        "stories",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _user_fk("author_id"),
        _ts("expires_at"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _counter("views_count"),
        _ts("created_at"),
    )
    op.create_index("ix_stories_author_active", "stories", ["author_id", "is_active", "expires_at"])

    op.create_table(
        "story_items",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("story_id", sa.Uuid(), sa.ForeignKey("stories.id", ondelete="CASCADE"), nullable=False),
        _counter("position"),
        sa.Column("media_url", sa.String(500), nullable=False),
        sa.Column("media_public_id", sa.String(255), nullable=True),
        sa.Column("caption", sa.String(200), nullable=False, server_default=""),
        sa.Column("music", sa.JSON(), nullable=True),
        sa.Column("text_overlay", sa.JSON(), nullable=True),
        _ts("created_at"),
    )

    op.create_table(
        "story_views",
        sa.Column("story_id", sa.Uuid(), sa.ForeignKey("stories.id", ondelete="CASCADE"), primary_key=True),
        _user_fk("user_id", primary_key=True),
        _ts("viewed_at"),
    )

    # ── Chat ──────────────────────────────────────────────────────────────
    op.create_table(
        "conversations",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _user_fk("participant_one_id"),
        _user_fk("participant_two_id"),
        _counter("unread_one"),
        _counter("unread_two"),
        sa.Column("last_message_id", sa.Uuid(), nullable=True),
        _ts("last_message_at"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _ts("created_at"),
        sa.UniqueConstraint("participant_one_id", "participant_two_id", name="uq_conversation_pair"),
    )
    op.create_index("ix_conversations_last_message_at", "conversations", ["last_message_at"])

    op.create_table(
        "messages",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "conversation_id", sa.Uuid(),
            sa.ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False,
        ),
        _user_fk("sender_id"),
        _user_fk("receiver_id"),
        sa.Column("content", sa.String(1000), nullable=False, server_default=""),
        sa.Column("type", sa.String(10), nullable=False, server_default="text"),
        sa.Column("media_url", sa.String(500), nullable=True),
        sa.Column("media_public_id", sa.String(255), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("read_at", nullable=True),
        _ts("created_at"),
    )
    op.create_index("ix_messages_conversation_created", "messages", ["conversation_id", "created_at"])
    op.create_index("ix_messages_receiver_read", "messages", ["receiver_id", "is_read"])

    # ── Notifications ─────────────────────────────────────────────────────
    op.create_table(
        "notifications",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _user_fk("user_id"),
        _user_fk("from_user_id"),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("post_id", sa.Uuid(), nullable=True),
        sa.Column("comment_id", sa.Uuid(), nullable=True),
        sa.Column("story_id", sa.Uuid(), nullable=True),
        sa.Column("duet_id", sa.Uuid(), nullable=True),
        sa.Column("message_id", sa.Uuid(), nullable=True),
        sa.Column("message_text", sa.String(500), nullable=False, server_default=""),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("read_at", nullable=True),
        _ts("created_at"),
    )
    op.create_index("ix_notifications_user_created", "notifications", ["user_id", "created_at"])
    op.create_index("ix_notifications_user_read", "notifications", ["user_id", "is_read"])


def downgrade() -> None:
    """Drop every table, children first."""
    for table in (
        "notifications",
        "messages",
        "conversations",
        "story_views",
        "story_items",
        "stories",
        "duet_likes",
        "duets",
        "comment_likes",
        "comments",
        "post_likes",
        "saved_posts",
        "posts",
        "refresh_tokens",
        "blocks",
        "follows",
        "users",
    ):
        op.drop_table(table)
