"""
SnapCap Backend: Notification Service Tests
=============================================

What we test:
    ✅ No notification for your own action
    ✅ An identical notification inside the dedupe window is reused
    ✅ Different targets are separate notifications
    ✅ Unknown types are rejected
    ✅ Reads are scoped to the recipient
"""

import uuid

import pytest
import pytest_asyncio

from snapcap.database import async_session_factory
from snapcap.exceptions import ForbiddenError, ValidationError
from snapcap.models.user import User
from snapcap.services.notification_service import notification_service
from snapcap.services.security import hash_password


async def _user(db, username: str) -> User:
    user = User(
        username=username,
        email=f"{username}@example.com",
        password_hash=hash_password("Passw0rd"),
        display_name=username.title(),
    )
    db.add(user)
    await db.flush()
    return user


@pytest_asyncio.fixture
async def session(database):
    async with async_session_factory() as db:
        yield db


async def test_self_notification_suppressed(session):
    alice = await _user(session, "alice")
    assert await notification_service.create(session, alice.id, alice, "like", post_id=uuid.uuid4()) is None
    assert await notification_service.unread_count(session, alice.id) == 0


async def test_duplicate_within_window_is_reused(session):
    alice = await _user(session, "alice")
    bob = await _user(session, "bob")
    post_id = uuid.uuid4()

    first = await notification_service.create(session, alice.id, bob, "like", post_id=post_id)
    second = await notification_service.create(session, alice.id, bob, "like", post_id=post_id)

    assert first is not None
    assert second.id == first.id
    assert first.message_text == "bob liked your post"
    assert await notification_service.unread_count(session, alice.id) == 1


async def test_different_targets_are_distinct(session):
    alice = await _user(session, "alice")
    bob = await _user(session, "bob")

    first = await notification_service.create(session, alice.id, bob, "like", post_id=uuid.uuid4())
    second = await notification_service.create(session, alice.id, bob, "like", post_id=uuid.uuid4())
    follow = await notification_service.create(session, alice.id, bob, "follow")

    assert len({first.id, second.id, follow.id}) == 3
    assert await notification_service.unread_count(session, alice.id) == 3


async def test_unknown_type_rejected(session):
    alice = await _user(session, "alice")
    bob = await _user(session, "bob")
    with pytest.raises(ValidationError):
        await notification_service.create(session, alice.id, bob, "poke")


async def test_mark_read_is_owner_only(session):
    alice = await _user(session, "alice")
    bob = await _user(session, "bob")
    notification = await notification_service.create(session, alice.id, bob, "follow")

    with pytest.raises(ForbiddenError):
        await notification_service.mark_read(session, bob.id, notification.id)

    _, was_unread = await notification_service.mark_read(session, alice.id, notification.id)
    assert was_unread is True
    _, was_unread = await notification_service.mark_read(session, alice.id, notification.id)
    assert was_unread is False


async def test_list_filters_by_type(session):
    alice = await _user(session, "alice")
    bob = await _user(session, "bob")
    await notification_service.create(session, alice.id, bob, "follow")
    await notification_service.create(session, alice.id, bob, "comment", post_id=uuid.uuid4())

    page = await notification_service.list_for_user(session, alice.id, page=1, limit=20, kind="follow")
    assert page.total == 1
    assert page.items[0].type == "follow"

    assert await notification_service.mark_all_read(session, alice.id) == 2
    assert await notification_service.unread_count(session, alice.id) == 0
