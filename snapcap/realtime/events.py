"""
SnapCap Backend: Gateway Event Schemas
========================================

What:  The closed set of frames the WebSocket gateway accepts and sends.
Why:   Every frame is `{"event": <name>, "data": {...}}`. Inbound frames are
       parsed into one tagged union (discriminator "event") so an unknown
       event or a malformed payload fails in one place with one error.
How:   pydantic v2 discriminated union + TypeAdapter. Payload keys are
       camelCase on the wire like the REST schemas.

Inbound:  join_conversation, leave_conversation, typing_start, typing_stop,
          post_liked, post_commented, user_followed, story_viewed,
          duet_created, message_sent, user_mentioned, ping
Outbound: connected, user_online, user_offline, user_typing,
          new_notification, new_message, pong, error
"""

import uuid
from datetime import datetime
from typing import Any, Dict, Literal, Optional, Union

from pydantic import Field, TypeAdapter, model_validator
from typing_extensions import Annotated

from snapcap.models.notification import Notification
from snapcap.models.user import User
from snapcap.schemas.common import APIModel


# ══════════════════════════════════════════════════════════════════════════
# Inbound payloads
# ══════════════════════════════════════════════════════════════════════════


class ConversationRef(APIModel):
    conversation_id: uuid.UUID

    @model_validator(mode="before")
    @classmethod
    def bare_id(cls, value: Any) -> Any:
        # Clients may send the id itself as the payload
        if isinstance(value, (str, uuid.UUID)):
            return {"conversationId": value}
        return value


class TypingData(APIModel):
    conversation_id: uuid.UUID
    receiver_id: Optional[uuid.UUID] = None


class PostLikedData(APIModel):
    post_id: uuid.UUID
    post_author_id: uuid.UUID


class PostCommentedData(APIModel):
    post_id: uuid.UUID
    post_author_id: uuid.UUID
    comment_id: Optional[uuid.UUID] = None


class UserFollowedData(APIModel):
    followed_user_id: uuid.UUID


class StoryViewedData(APIModel):
    story_id: uuid.UUID
    story_author_id: uuid.UUID


class DuetCreatedData(APIModel):
    original_post_id: uuid.UUID
    original_post_author_id: uuid.UUID
    duet_id: uuid.UUID


class MessageSentData(APIModel):
    conversation_id: Optional[uuid.UUID] = None
    receiver_id: uuid.UUID
    message_id: uuid.UUID


class UserMentionedData(APIModel):
    mentioned_user_id: uuid.UUID
    post_id: Optional[uuid.UUID] = None
    comment_id: Optional[uuid.UUID] = None


class EmptyData(APIModel):
    pass


# ══════════════════════════════════════════════════════════════════════════
# Inbound frames
# ══════════════════════════════════════════════════════════════════════════


class JoinConversation(APIModel):
    event: Literal["join_conversation"]
    data: ConversationRef


class LeaveConversation(APIModel):
    event: Literal["leave_conversation"]
    data: ConversationRef


class TypingStart(APIModel):
    event: Literal["typing_start"]
    data: TypingData


class TypingStop(APIModel):
    event: Literal["typing_stop"]
    data: TypingData


class PostLiked(APIModel):
    event: Literal["post_liked"]
    data: PostLikedData


class PostCommented(APIModel):
    event: Literal["post_commented"]
    data: PostCommentedData


class UserFollowed(APIModel):
    event: Literal["user_followed"]
    data: UserFollowedData


class StoryViewed(APIModel):
    event: Literal["story_viewed"]
    data: StoryViewedData


class DuetCreated(APIModel):
    event: Literal["duet_created"]
    data: DuetCreatedData


class MessageSent(APIModel):
    event: Literal["message_sent"]
    data: MessageSentData


class UserMentioned(APIModel):
    event: Literal["user_mentioned"]
    data: UserMentionedData


class Ping(APIModel):
    event: Literal["ping"]
    data: EmptyData = Field(default_factory=EmptyData)


InboundFrame = Annotated[
    Union[
        JoinConversation,
        LeaveConversation,
        TypingStart,
        TypingStop,
        PostLiked,
        PostCommented,
        UserFollowed,
        StoryViewed,
        DuetCreated,
        MessageSent,
        UserMentioned,
        Ping,
    ],
    Field(discriminator="event"),
]

inbound_adapter: TypeAdapter = TypeAdapter(InboundFrame)


def parse_frame(raw: Union[str, bytes]):
    """
    Parse one text frame.

    Raises:
        pydantic.ValidationError for bad JSON, unknown events and bad payloads
    """
    return inbound_adapter.validate_json(raw)


# ══════════════════════════════════════════════════════════════════════════
# Outbound payloads
# ══════════════════════════════════════════════════════════════════════════


class Presence(APIModel):
    user_id: uuid.UUID
    username: str
    is_online: bool


class Connected(APIModel):
    user_id: uuid.UUID
    username: str
    rooms: int


class Typing(APIModel):
    user_id: uuid.UUID
    username: str
    is_typing: bool
    conversation_id: uuid.UUID


class FromUser(APIModel):
    id: uuid.UUID
    username: str
    avatar: str


class NotificationEvent(APIModel):
    """Payload of `new_notification`."""

    id: Optional[uuid.UUID] = None
    type: str
    from_user: FromUser
    post_id: Optional[uuid.UUID] = None
    comment_id: Optional[uuid.UUID] = None
    story_id: Optional[uuid.UUID] = None
    duet_id: Optional[uuid.UUID] = None
    message_id: Optional[uuid.UUID] = None
    message: str

    @classmethod
    def build(cls, notification: Notification, from_user: User) -> "NotificationEvent":
        return cls(
            id=notification.id,
            type=notification.type,
            from_user=FromUser(id=from_user.id, username=from_user.username, avatar=from_user.avatar),
            post_id=notification.post_id,
            comment_id=notification.comment_id,
            story_id=notification.story_id,
            duet_id=notification.duet_id,
            message_id=notification.message_id,
            message=notification.message_text,
        )


class Pong(APIModel):
    timestamp: datetime


class ErrorEvent(APIModel):
    message: str


def encode(event: str, payload: Union[APIModel, Dict[str, Any], None] = None) -> Dict[str, Any]:
    """Build an outbound frame; models are dumped camelCase without nulls."""
    if isinstance(payload, APIModel):
        data = payload.model_dump(mode="json", by_alias=True, exclude_none=True)
    else:
        data = payload or {}
    return {"event": event, "data": data}
