"""
SnapCap Backend: Realtime Gateway
===================================

What:  The /ws endpoint: presence, typing indicators, conversation rooms
       and live notifications.
Why:   REST writes are durable; this socket is the low latency path on top.
       A recipient who is offline misses the live event and reads the
       persisted Notification later through /api/notifications.
How:   Per connection lifecycle:
           connecting -> authenticated -> joined rooms -> active -> closed
       1. Token from `?token=` or `Authorization: Bearer`. Failures close
          with 4401 and an "Authentication error: ..." reason.
       2. Mark online, join the personal room and one `user_<id>` room per
          followed user, broadcast `user_online` to everyone else.
       3. Each text frame is parsed into the InboundFrame union and
          dispatched. A malformed frame or a failed action answers with an
          `error` event; the socket stays open.
       4. On disconnect mark offline with last_seen and broadcast
          `user_offline`. A database failure here is logged, not raised.

Every event handler opens its own session and commits before emitting, so
a live event never announces a row that was rolled back.
"""

import logging
import uuid
from typing import List, Optional, Tuple

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PydanticValidationError

from snapcap.database import async_session_factory, utcnow
from snapcap.exceptions import AuthenticationError, SnapCapError
from snapcap.models.user import User
from snapcap.realtime import events
from snapcap.realtime.hub import Connection, conversation_room, follow_room, hub
from snapcap.services.chat_service import chat_service
from snapcap.services.notification_service import notification_service
from snapcap.services.security import decode_token, extract_bearer
from snapcap.services.user_service import user_service

logger = logging.getLogger(__name__)

router = APIRouter()

AUTH_CLOSE_CODE = 4401
NO_TOKEN = "Authentication error: No token provided"
USER_NOT_FOUND = "Authentication error: User not found"
INVALID_TOKEN = "Authentication error: Invalid token"


# ══════════════════════════════════════════════════════════════════════════
# Connection Lifecycle
# ══════════════════════════════════════════════════════════════════════════


def _token(websocket: WebSocket) -> Optional[str]:
    return websocket.query_params.get("token") or extract_bearer(websocket.headers.get("authorization"))


async def _authenticate(websocket: WebSocket) -> Optional[Tuple[User, List[uuid.UUID]]]:
    """Resolve and mark online the connecting user with the ids they follow; None after closing with 4401."""
    token = _token(websocket)
    if not token:
        await websocket.close(code=AUTH_CLOSE_CODE, reason=NO_TOKEN)
        return None
    try:
        user_id = decode_token(token)
    except AuthenticationError:
        await websocket.close(code=AUTH_CLOSE_CODE, reason=INVALID_TOKEN)
        return None

    async with async_session_factory() as db:
        user = await user_service.set_presence(db, user_id, online=True)
        if user is None:
            await websocket.close(code=AUTH_CLOSE_CODE, reason=USER_NOT_FOUND)
            return None
        following = await user_service.following_ids(db, user.id)
        await db.commit()
    return user, following


async def _go_offline(connection: Connection) -> None:
    hub.unregister(connection)
    if hub.is_online(connection.user_id):
        # Another tab of the same user is still connected
        return
    try:
        async with async_session_factory() as db:
            await user_service.set_presence(db, connection.user_id, online=False)
            await db.commit()
    except Exception as e:
        logger.error("Failed to mark %s offline: %s", connection.username, str(e))
    await hub.broadcast(
        "user_offline",
        events.Presence(user_id=connection.user_id, username=connection.username, is_online=False),
    )


@router.websocket("/ws")
async def gateway(websocket: WebSocket):
    # Accept first so an auth failure can carry a close code and reason.
    await websocket.accept()
    authenticated = await _authenticate(websocket)
    if authenticated is None:
        return
    user, following = authenticated

    connection = Connection(websocket, user.id, user.username)
    hub.register(connection)
    for followed_id in following:
        hub.join(connection, follow_room(followed_id))
    logger.info("Socket connected: %s (%s), %d rooms", user.username, connection.id, len(connection.rooms))

    try:
        await connection.send(
            events.encode(
                "connected",
                events.Connected(user_id=user.id, username=user.username, rooms=len(connection.rooms)),
            )
        )
        await hub.broadcast(
            "user_online",
            events.Presence(user_id=user.id, username=user.username, is_online=True),
            exclude=connection,
        )
        while True:
            raw = await websocket.receive_text()
            await _handle_frame(connection, raw)
    except WebSocketDisconnect as e:
        logger.info("Socket disconnected: %s (%s), code=%s", connection.username, connection.id, e.code)
    finally:
        await _go_offline(connection)


# ══════════════════════════════════════════════════════════════════════════
# Dispatch
# ══════════════════════════════════════════════════════════════════════════


async def _send_error(connection: Connection, message: str) -> None:
    await connection.send(events.encode("error", events.ErrorEvent(message=message)))


async def _handle_frame(connection: Connection, raw: str) -> None:
    try:
        frame = events.parse_frame(raw)
    except PydanticValidationError as e:
        logger.debug("Rejected frame from %s: %s", connection.username, e.errors()[:1])
        await _send_error(connection, "Invalid event")
        return

    handler = HANDLERS[frame.event]
    try:
        await handler(connection, frame.data)
    except SnapCapError as e:
        await _send_error(connection, e.message)
    except Exception as e:
        logger.exception("Socket event %s failed for %s: %s", frame.event, connection.username, str(e))
        await _send_error(connection, "Internal server error")


async def _load_user(db, connection: Connection) -> User:
    user = await db.get(User, connection.user_id)
    if user is None:
        raise AuthenticationError(AuthenticationError.USER_NOT_FOUND)
    return user


# ── Rooms ─────────────────────────────────────────────────────────────────


async def _join_conversation(connection: Connection, data: events.ConversationRef) -> None:
    async with async_session_factory() as db:
        user = await _load_user(db, connection)
        await chat_service.get_conversation(db, user, data.conversation_id)
    hub.join(connection, conversation_room(data.conversation_id))


async def _leave_conversation(connection: Connection, data: events.ConversationRef) -> None:
    hub.leave(connection, conversation_room(data.conversation_id))


async def _typing(connection: Connection, data: events.TypingData, is_typing: bool) -> None:
    await hub.emit_to_room(
        conversation_room(data.conversation_id),
        "user_typing",
        events.Typing(
            user_id=connection.user_id,
            username=connection.username,
            is_typing=is_typing,
            conversation_id=data.conversation_id,
        ),
        exclude=connection,
    )


async def _typing_start(connection: Connection, data: events.TypingData) -> None:
    await _typing(connection, data, True)


async def _typing_stop(connection: Connection, data: events.TypingData) -> None:
    await _typing(connection, data, False)


# ── Interactions ──────────────────────────────────────────────────────────


async def _notify(connection: Connection, recipient_id: uuid.UUID, kind: str, **targets) -> None:
    """
    Persist a notification for `recipient_id` and push it to their room.

    Raises:
        NotFoundError: `recipient_id` is not a user
    """
    async with async_session_factory() as db:
        sender = await _load_user(db, connection)
        recipient = await user_service.get_user(db, recipient_id)
        notification = await notification_service.create(db, recipient.id, sender, kind, **targets)
        if notification is None:
            return
        payload = events.NotificationEvent.build(notification, sender)
        await db.commit()
    await hub.emit_to_user(recipient_id, "new_notification", payload)


async def _post_liked(connection: Connection, data: events.PostLikedData) -> None:
    await _notify(connection, data.post_author_id, "like", post_id=data.post_id)


async def _post_commented(connection: Connection, data: events.PostCommentedData) -> None:
    await _notify(connection, data.post_author_id, "comment", post_id=data.post_id, comment_id=data.comment_id)


async def _user_followed(connection: Connection, data: events.UserFollowedData) -> None:
    async with async_session_factory() as db:
        follower = await _load_user(db, connection)
        await user_service.follow(db, follower, data.followed_user_id)
        await db.commit()
    hub.join(connection, follow_room(data.followed_user_id))
    await _notify(connection, data.followed_user_id, "follow")


async def _story_viewed(connection: Connection, data: events.StoryViewedData) -> None:
    await _notify(connection, data.story_author_id, "story_view", story_id=data.story_id)


async def _duet_created(connection: Connection, data: events.DuetCreatedData) -> None:
    await _notify(
        connection, data.original_post_author_id, "duet", post_id=data.original_post_id, duet_id=data.duet_id
    )


async def _message_sent(connection: Connection, data: events.MessageSentData) -> None:
    await _notify(connection, data.receiver_id, "message", message_id=data.message_id)


async def _user_mentioned(connection: Connection, data: events.UserMentionedData) -> None:
    await _notify(
        connection, data.mentioned_user_id, "mention", post_id=data.post_id, comment_id=data.comment_id
    )


async def _ping(connection: Connection, data: events.EmptyData) -> None:
    await connection.send(events.encode("pong", events.Pong(timestamp=utcnow())))


HANDLERS = {
    "join_conversation": _join_conversation,
    "leave_conversation": _leave_conversation,
    "typing_start": _typing_start,
    "typing_stop": _typing_stop,
    "post_liked": _post_liked,
    "post_commented": _post_commented,
    "user_followed": _user_followed,
    "story_viewed": _story_viewed,
    "duet_created": _duet_created,
    "message_sent": _message_sent,
    "user_mentioned": _user_mentioned,
    "ping": _ping,
}
