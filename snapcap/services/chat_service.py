"""
SnapCap Backend: Chat Service
===============================

What:  One-to-one conversations and their messages.
Why:   A conversation is found or created by its ordered participant pair,
       so both sides always land on the same row. Unread counters live on
       the conversation per participant and are bumped on send and zeroed
       by read-all.
How:   Sending persists the message, updates the conversation pointer and
       relays `new_message` to the receiver's personal room. Reading
       messages never changes their read state; only the explicit mark-read
       endpoints do.
"""

import logging
import uuid
from typing import List, Optional, Tuple

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from snapcap.database import utcnow
from snapcap.exceptions import ForbiddenError, NotFoundError, ValidationError
from snapcap.models.chat import Conversation, Message, ordered_pair
from snapcap.models.user import User
from snapcap.realtime.hub import hub
from snapcap.schemas.chat import ConversationOut, MessageOut
from snapcap.schemas.common import APIModel, Page
from snapcap.services.storage_service import StoredMedia, storage_service
from snapcap.services.user_service import user_service

logger = logging.getLogger(__name__)

ACCESS_DENIED = "Access denied to this conversation"
MESSAGE_NOT_FOUND = "Message not found"
DEFAULT_MESSAGE_LIMIT = 50


def media_message_type(mime_type: str) -> str:
    for prefix in ("image", "video", "audio"):
        if mime_type.startswith(prefix + "/"):
            return prefix
    return "file"


def _set_unread(conversation: Conversation, user_id: uuid.UUID, value: int) -> None:
    if user_id == conversation.participant_one_id:
        conversation.unread_one = value
    else:
        conversation.unread_two = value


class NewMessageEvent(APIModel):
    message: MessageOut
    conversation: ConversationOut


class ChatService:
    # ── Conversations ─────────────────────────────────────────────────────

    async def get_conversation(self, db: AsyncSession, user: User, conversation_id: uuid.UUID) -> Conversation:
        """Load a conversation the caller participates in (404 / 403)."""
        conversation = await db.get(Conversation, conversation_id)
        if conversation is None:
            raise NotFoundError(
                message="Conversation not found", resource="conversation", resource_id=str(conversation_id)
            )
        if not conversation.has_participant(user.id):
            raise ForbiddenError(ACCESS_DENIED)
        return conversation

    async def find_by_pair(self, db: AsyncSession, a: uuid.UUID, b: uuid.UUID) -> Optional[Conversation]:
        one, two = ordered_pair(a, b)
        result = await db.execute(
            select(Conversation).where(
                Conversation.participant_one_id == one, Conversation.participant_two_id == two
            )
        )
        return result.scalars().first()

    async def find_or_create(
        self, db: AsyncSession, caller: User, receiver_id: Optional[uuid.UUID]
    ) -> Conversation:
        if receiver_id is None:
            raise ValidationError(message="Receiver ID is required", field="receiverId")
        if receiver_id == caller.id:
            raise ValidationError(message="Cannot start conversation with yourself", field="receiverId")
        receiver = await user_service.get_user(db, receiver_id)

        existing = await self.find_by_pair(db, caller.id, receiver.id)
        if existing is not None:
            if not existing.is_active:
                existing.is_active = True
                await db.flush()
            return existing

        one, two = ordered_pair(caller.id, receiver.id)
        users = {caller.id: caller, receiver.id: receiver}
        conversation = Conversation(participant_one=users[one], participant_two=users[two])
        try:
            async with db.begin_nested():
                db.add(conversation)
        except IntegrityError:
            # Another request created the pair between our select and insert
            logger.debug("Conversation race for %s/%s, reusing row", one, two)
            existing = await self.find_by_pair(db, one, two)
            if existing is None:
                raise
            return existing

        logger.info("Conversation %s started by %s", conversation.id, caller.username)
        return conversation

    async def conversations(self, db: AsyncSession, user: User) -> List[Conversation]:
        result = await db.execute(
            select(Conversation)
            .where(
                or_(Conversation.participant_one_id == user.id, Conversation.participant_two_id == user.id),
                Conversation.is_active.is_(True),
            )
            .order_by(Conversation.last_message_at.desc())
        )
        return list(result.scalars().unique().all())

    # ── Messages ──────────────────────────────────────────────────────────

    async def messages(
        self,
        db: AsyncSession,
        user: User,
        conversation_id: uuid.UUID,
        page: int,
        limit: int = DEFAULT_MESSAGE_LIMIT,
    ) -> Page[Message]:
        """Page 1 is the newest `limit` messages, returned oldest first."""
        conversation = await self.get_conversation(db, user, conversation_id)
        conditions = [Message.conversation_id == conversation.id]
        total = await db.scalar(select(func.count()).select_from(Message).where(*conditions))
        result = await db.execute(
            select(Message)
            .where(*conditions)
            .order_by(Message.created_at.desc(), Message.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        items = list(result.scalars().unique().all())
        items.reverse()
        return Page(items, total or 0, page, limit)

    async def send(
        self,
        db: AsyncSession,
        sender: User,
        receiver_id: Optional[uuid.UUID],
        content: str = "",
        message_type: str = "text",
        media: Optional[StoredMedia] = None,
    ) -> Tuple[Message, Conversation]:
        """
        Validate, persist and relay one message. The message is committed
        before `new_message` goes out, so the receiver can always load it.

        An attached file that turns out not to be needed by a failed
        validation is deleted again.

        Raises:
            ValidationError: missing receiver, self-send, missing content/media
            ForbiddenError:  either side has blocked the other
            NotFoundError:   receiver does not exist
        """
        try:
            if receiver_id is None:
                raise ValidationError(message="Receiver ID is required", field="receiverId")
            if receiver_id == sender.id:
                raise ValidationError(message="Cannot send message to yourself", field="receiverId")
            if media is not None and message_type == "text":
                message_type = media_message_type(media.mime_type)
            if message_type == "text" and not content:
                raise ValidationError(message="Message content is required for text messages", field="content")
            if message_type != "text" and media is None:
                raise ValidationError(message="Media file is required for this message type", field="media")

            receiver = await user_service.get_user(db, receiver_id)
            await user_service.ensure_not_blocked(db, sender.id, receiver.id)
            conversation = await self.find_or_create(db, sender, receiver.id)
        except Exception:
            if media is not None:
                await storage_service.delete(media.public_id)
            raise

        message = Message(
            conversation_id=conversation.id,
            sender=sender,
            receiver=receiver,
            content=content,
            type=message_type,
            media_url=media.url if media else None,
            media_public_id=media.public_id if media else None,
        )
        db.add(message)
        await db.flush()

        conversation.last_message_id = message.id
        conversation.last_message_at = message.created_at
        conversation.is_active = True
        conversation.bump_unread(receiver.id)
        await db.commit()

        await self.relay(message, conversation)
        logger.info("Message %s (%s) %s -> %s", message.id, message_type, sender.username, receiver.username)
        return message, conversation

    async def relay(self, message: Message, conversation: Conversation) -> int:
        """Push `new_message` to the receiver's personal room."""
        event = NewMessageEvent(
            message=MessageOut.from_message(message),
            conversation=ConversationOut.for_viewer(conversation, message.receiver_id),
        )
        return await hub.emit_to_user(message.receiver_id, "new_message", event)

    async def _message(self, db: AsyncSession, message_id: uuid.UUID) -> Message:
        message = await db.get(Message, message_id)
        if message is None:
            raise NotFoundError(message=MESSAGE_NOT_FOUND, resource="message", resource_id=str(message_id))
        return message

    async def mark_read(self, db: AsyncSession, user: User, message_id: uuid.UUID) -> Message:
        message = await self._message(db, message_id)
        if message.receiver_id != user.id:
            raise ForbiddenError("Not authorized to mark this message as read")
        if not message.is_read:
            message.is_read = True
            message.read_at = utcnow()
            conversation = await db.get(Conversation, message.conversation_id)
            if conversation is not None:
                remaining = await db.scalar(
                    select(func.count()).select_from(Message).where(
                        Message.conversation_id == conversation.id,
                        Message.receiver_id == user.id,
                        Message.is_read.is_(False),
                        Message.id != message.id,
                    )
                )
                _set_unread(conversation, user.id, remaining or 0)
            await db.flush()
        return message

    async def delete_message(self, db: AsyncSession, user: User, message_id: uuid.UUID) -> None:
        message = await self._message(db, message_id)
        if message.sender_id != user.id:
            raise ForbiddenError("Not authorized to delete this message")
        public_id = message.media_public_id
        conversation = await db.get(Conversation, message.conversation_id)
        was_unread = not message.is_read

        await db.delete(message)
        await db.flush()

        if conversation is not None:
            if was_unread:
                receiver_unread = conversation.unread_for(message.receiver_id)
                _set_unread(conversation, message.receiver_id, max(receiver_unread - 1, 0))
            if conversation.last_message_id == message.id:
                latest = (
                    await db.execute(
                        select(Message)
                        .where(Message.conversation_id == conversation.id)
                        .order_by(Message.created_at.desc())
                        .limit(1)
                    )
                ).scalars().first()
                conversation.last_message_id = latest.id if latest else None
            await db.flush()

        if public_id:
            await storage_service.delete(public_id)

    async def unread_count(self, db: AsyncSession, user: User) -> int:
        count = await db.scalar(
            select(func.count())
            .select_from(Message)
            .where(Message.receiver_id == user.id, Message.is_read.is_(False))
        )
        return count or 0

    async def read_all(self, db: AsyncSession, user: User, conversation_id: uuid.UUID) -> int:
        """Mark every message the caller received in the conversation as read."""
        conversation = await self.get_conversation(db, user, conversation_id)
        result = await db.execute(
            update(Message)
            .where(
                Message.conversation_id == conversation.id,
                Message.receiver_id == user.id,
                Message.is_read.is_(False),
            )
            .values(is_read=True, read_at=utcnow())
        )
        conversation.clear_unread(user.id)
        await db.flush()
        return result.rowcount or 0


# ── Singleton Instance ────────────────────────────────────────────────────
chat_service = ChatService()
