"""
SnapCap Backend: Friend Routes
================================

What:  /api/friends: the followed users, their posts and locations, and chat
       shortcuts addressed by friend id.
"""

import logging
import uuid
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from snapcap.database import get_db_session
from snapcap.dependencies import PageParams, get_current_user, message_page_params
from snapcap.models.user import User
from snapcap.schemas.chat import ConversationOut, DirectMessageCreate, MessageList, MessageOut
from snapcap.schemas.common import Envelope, ok
from snapcap.schemas.post import PostOut
from snapcap.schemas.user import FriendList, LocationPayload
from snapcap.services.friend_service import friend_service
from snapcap.services.post_service import post_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/friends", tags=["Friends"])


@router.get("", response_model=Envelope[FriendList])
async def list_friends(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db_session)):
    friends = await friend_service.friends(db, user)
    return ok(FriendList(friends=friends, total=len(friends)))


@router.get("/{friend_id}/posts", response_model=Envelope[List[PostOut]], summary="A friend's 10 most recent posts")
async def friend_posts(
    friend_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    posts = await friend_service.posts(db, friend_id)
    return ok(await post_service.to_out(db, posts, user))


@router.get("/{friend_id}/location", response_model=Envelope[LocationPayload])
async def friend_location(
    friend_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return ok(await friend_service.location(db, friend_id))


@router.post("/{friend_id}/chat", response_model=Envelope[ConversationOut])
async def start_chat(
    friend_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    conversation = await friend_service.start_chat(db, user, friend_id)
    return ok(ConversationOut.for_viewer(conversation, user.id), "Chat started successfully")


@router.get("/{friend_id}/messages", response_model=Envelope[MessageList])
async def friend_messages(
    friend_id: uuid.UUID,
    paging: PageParams = Depends(message_page_params),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    page = await friend_service.messages(db, user, friend_id, paging.page, paging.limit)
    return ok(MessageList(messages=[MessageOut.from_message(m) for m in page.items], pagination=page.pagination))


@router.post("/{friend_id}/messages", status_code=201, response_model=Envelope[MessageOut])
async def send_to_friend(
    friend_id: uuid.UUID,
    body: DirectMessageCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    message, _ = await friend_service.send(db, user, friend_id, body.content, body.type)
    return ok(MessageOut.from_message(message), "Message sent successfully")
