"""
SnapCap Backend: Chat Routes
==============================

What:  /api/chat: conversations, message history, sending and read state.
How:   POST /messages takes either a JSON body or multipart form data with a
       `media` file; both paths end in chat_service.send(), which relays
       `new_message` to the receiver's socket room.
"""

import logging
import uuid

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.datastructures import UploadFile

from snapcap.database import get_db_session
from snapcap.dependencies import PageParams, build_model, get_current_user, message_page_params
from snapcap.exceptions import ValidationError
from snapcap.models.user import User
from snapcap.schemas.chat import (
    ConversationCreate,
    ConversationList,
    ConversationOut,
    MessageCreate,
    MessageList,
    MessageOut,
    UnreadCount,
)
from snapcap.schemas.common import Envelope, MessageEnvelope, ModifiedCount, ok
from snapcap.services.chat_service import chat_service
from snapcap.services.storage_service import MESSAGE, storage_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat", tags=["Chat"])


@router.get("/conversations", response_model=Envelope[ConversationList])
async def list_conversations(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db_session)):
    conversations = await chat_service.conversations(db, user)
    return ok(ConversationList(conversations=[ConversationOut.for_viewer(c, user.id) for c in conversations]))


@router.post("/conversations", response_model=Envelope[ConversationOut], summary="Find or create a conversation")
async def start_conversation(
    body: ConversationCreate = ConversationCreate(),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    conversation = await chat_service.find_or_create(db, user, body.receiver_id)
    return ok(ConversationOut.for_viewer(conversation, user.id), "Chat started successfully")


@router.get("/conversations/{conversation_id}/messages", response_model=Envelope[MessageList])
async def conversation_messages(
    conversation_id: uuid.UUID,
    paging: PageParams = Depends(message_page_params),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    page = await chat_service.messages(db, user, conversation_id, paging.page, paging.limit)
    return ok(MessageList(messages=[MessageOut.from_message(m) for m in page.items], pagination=page.pagination))


@router.put("/conversations/{conversation_id}/read-all", response_model=Envelope[ModifiedCount])
async def read_all(
    conversation_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    count = await chat_service.read_all(db, user, conversation_id)
    return ok(ModifiedCount(modified_count=count), "All messages marked as read")


@router.post(
    "/messages",
    status_code=201,
    response_model=Envelope[MessageOut],
    summary="Send a message",
    description="JSON {receiverId, content, type} or multipart with a `media` file (max 20MB).",
)
async def send_message(
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    media_upload = None
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("multipart/form-data"):
        form = await request.form()
        fields = {k: v for k, v in form.items() if not isinstance(v, UploadFile)}
        upload = form.get("media")
        if isinstance(upload, UploadFile) and upload.filename:
            media_upload = upload
    else:
        try:
            fields = await request.json()
        except ValueError:
            raise ValidationError(message="Request body must be valid JSON")
        if not isinstance(fields, dict):
            raise ValidationError(message="Request body must be a JSON object")

    data = build_model(MessageCreate, **fields)
    media = await storage_service.save_upload(media_upload, MESSAGE) if media_upload is not None else None
    message, _ = await chat_service.send(db, user, data.receiver_id, data.content, data.type, media)
    return ok(MessageOut.from_message(message), "Message sent successfully")


@router.put("/messages/{message_id}/read", response_model=Envelope[MessageOut])
async def mark_read(
    message_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    message = await chat_service.mark_read(db, user, message_id)
    return ok(MessageOut.from_message(message), "Message marked as read")


@router.delete("/messages/{message_id}", response_model=MessageEnvelope)
async def delete_message(
    message_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await chat_service.delete_message(db, user, message_id)
    return MessageEnvelope(message="Message deleted successfully")


@router.get("/unread-count", response_model=Envelope[UnreadCount])
async def unread_count(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db_session)):
    return ok(UnreadCount(unread_count=await chat_service.unread_count(db, user)))
