"""
SnapCap Backend: Chat Schemas
===============================
"""

import uuid
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import Field, field_validator

from snapcap.models.chat import Conversation, Message
from snapcap.schemas.common import APIModel, Pagination
from snapcap.schemas.user import UserSummary

MessageType = Literal["text", "image", "video", "audio", "file"]


class ConversationCreate(APIModel):
    receiver_id: Optional[uuid.UUID] = None


class MessageCreate(APIModel):
    receiver_id: Optional[uuid.UUID] = None
    content: str = Field(default="", max_length=1000)
    type: MessageType = "text"

    @field_validator("content")
    @classmethod
    def strip_content(cls, v: str) -> str:
        return v.strip()


class DirectMessageCreate(APIModel):
    """Body of POST /api/friends/{id}/messages (receiver comes from the path)."""

    content: str = Field(default="", max_length=1000)
    type: MessageType = "text"

    @field_validator("content")
    @classmethod
    def strip_content(cls, v: str) -> str:
        return v.strip()


class MessageOut(APIModel):
    id: uuid.UUID
    conversation_id: uuid.UUID
    sender: UserSummary
    receiver: UserSummary
    content: str
    type: str
    media_url: Optional[str] = None
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def from_message(cls, message: Message) -> "MessageOut":
        return cls(
            id=message.id,
            conversation_id=message.conversation_id,
            sender=UserSummary.model_validate(message.sender),
            receiver=UserSummary.model_validate(message.receiver),
            content=message.content,
            type=message.type,
            media_url=message.media_url,
            is_read=message.is_read,
            read_at=message.read_at,
            created_at=message.created_at,
        )


class ConversationOut(APIModel):
    id: uuid.UUID
    participant: UserSummary = Field(description="The other participant")
    last_message_id: Optional[uuid.UUID] = None
    last_message_at: datetime
    unread_count: int
    is_active: bool

    @classmethod
    def for_viewer(cls, conversation: Conversation, viewer_id: uuid.UUID) -> "ConversationOut":
        return cls(
            id=conversation.id,
            participant=UserSummary.model_validate(conversation.other_participant(viewer_id)),
            last_message_id=conversation.last_message_id,
            last_message_at=conversation.last_message_at,
            unread_count=conversation.unread_for(viewer_id),
            is_active=conversation.is_active,
        )


class ConversationList(APIModel):
    conversations: List[ConversationOut]


class MessageList(APIModel):
    messages: List[MessageOut]
    pagination: Pagination


class UnreadCount(APIModel):
    unread_count: int
