"""
SnapCap Backend: ORM Models
=============================

Importing this package registers every table on `Base.metadata`
(Alembic autogenerate and the test schema rely on it).
"""

from snapcap.models.user import Block, Follow, RefreshToken, SavedPost, User
from snapcap.models.post import Comment, CommentLike, Duet, DuetLike, Post, PostLike
from snapcap.models.story import Story, StoryItem, StoryView
from snapcap.models.chat import Conversation, Message
from snapcap.models.notification import Notification

__all__ = [
    "Block",
    "Comment",
    "CommentLike",
    "Conversation",
    "Duet",
    "DuetLike",
    "Follow",
    "Message",
    "Notification",
    "Post",
    "PostLike",
    "RefreshToken",
    "SavedPost",
    "Story",
    "StoryItem",
    "StoryView",
    "User",
]
