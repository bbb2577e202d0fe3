"""
SnapCap Backend: Realtime Gateway Tests
=========================================

What:  End-to-end tests of /ws through Starlette's TestClient.
How:   One TestClient (one app event loop) per test; accounts are created
       through the same client. A ping/pong round trip is used as a barrier
       so that earlier frames from a socket are known to be processed.

What we test:
    ✅ Auth failures close with 4401 and a specific reason
    ✅ connected / user_online / user_offline presence events
    ✅ ping → pong, malformed frames → error (socket stays open)
    ✅ Typing indicators reach the other room member only
    ✅ Interaction events persist and deliver a notification; unknown recipients are refused
    ✅ New posts are not pushed to followers; a like still reaches the author
    ✅ Only participants may join a conversation room
"""

import uuid
from typing import Any, Dict

import pytest
from starlette.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

import snapcap.models  # noqa: F401
from snapcap.database import Base, engine
from snapcap.middleware.rate_limit import reset_limiters
from snapcap.realtime.gateway import AUTH_CLOSE_CODE, INVALID_TOKEN, NO_TOKEN, USER_NOT_FOUND
from snapcap.services.security import create_token


async def _create_schema() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def _drop_schema() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def client():
    """TestClient whose lifespan and schema live on the app's own event loop."""
    from snapcap.main import app

    with TestClient(app) as test_client:
        test_client.portal.call(_drop_schema)
        test_client.portal.call(_create_schema)
        reset_limiters()
        yield test_client
        test_client.portal.call(_drop_schema)


def _register(client: TestClient, username: str) -> Dict[str, Any]:
    response = client.post(
        "/api/auth/register",
        json={
            "username": username,
            "email": f"{username}@example.com",
            "password": "Passw0rd",
            "displayName": username.title(),
        },
    )
    assert response.status_code == 201, response.text
    data = response.json()["data"]
    return {"id": data["user"]["id"], "token": data["accessToken"]}


def _auth(account: Dict[str, Any]) -> Dict[str, str]:
    return {"Authorization": f"Bearer {account['token']}"}


def _create_post(client: TestClient, account: Dict[str, Any], image_bytes: bytes):
    return client.post(
        "/api/posts",
        data={"caption": "fresh drop"},
        files={"image": ("photo.jpg", image_bytes, "image/jpeg")},
        headers=_auth(account),
    )


def _barrier(ws) -> None:
    ws.send_json({"event": "ping"})
    frame = ws.receive_json()
    assert frame["event"] == "pong"


def _close_reason(client: TestClient, url: str):
    with client.websocket_connect(url) as ws:
        with pytest.raises(WebSocketDisconnect) as exc_info:
            ws.receive_json()
    return exc_info.value.code, exc_info.value.reason


class TestAuthentication:
    def test_missing_token(self, client):
        assert _close_reason(client, "/ws") == (AUTH_CLOSE_CODE, NO_TOKEN)

    def test_invalid_token(self, client):
        assert _close_reason(client, "/ws?token=garbage") == (AUTH_CLOSE_CODE, INVALID_TOKEN)

    def test_unknown_user(self, client):
        token, _ = create_token(uuid.uuid4())
        assert _close_reason(client, f"/ws?token={token}") == (AUTH_CLOSE_CODE, USER_NOT_FOUND)

    def test_bearer_header_accepted(self, client):
        alice = _register(client, "alice")
        with client.websocket_connect("/ws", headers={"Authorization": f"Bearer {alice['token']}"}) as ws:
            frame = ws.receive_json()
        assert frame["event"] == "connected"
        assert frame["data"]["userId"] == alice["id"]


class TestSession:
    def test_ping_and_bad_frames(self, client):
        alice = _register(client, "alice")
        with client.websocket_connect(f"/ws?token={alice['token']}") as ws:
            assert ws.receive_json()["event"] == "connected"

            ws.send_text("not json")
            assert ws.receive_json() == {"event": "error", "data": {"message": "Invalid event"}}

            ws.send_json({"event": "teleport", "data": {}})
            assert ws.receive_json()["data"]["message"] == "Invalid event"

            ws.send_json({"event": "ping"})
            pong = ws.receive_json()
            assert pong["event"] == "pong"
            assert "timestamp" in pong["data"]

    def test_presence_events(self, client):
        alice = _register(client, "alice")
        bob = _register(client, "bob")

        with client.websocket_connect(f"/ws?token={alice['token']}") as alice_ws:
            assert alice_ws.receive_json()["event"] == "connected"

            with client.websocket_connect(f"/ws?token={bob['token']}") as bob_ws:
                assert bob_ws.receive_json()["event"] == "connected"
                online = alice_ws.receive_json()
                assert online["event"] == "user_online"
                assert online["data"] == {"userId": bob["id"], "username": "bob", "isOnline": True}

            offline = alice_ws.receive_json()
            assert offline["event"] == "user_offline"
            assert offline["data"]["userId"] == bob["id"]
            assert offline["data"]["isOnline"] is False

        profile = client.get(f"/api/users/{bob['id']}").json()["data"]
        assert profile["isOnline"] is False


class TestConversations:
    def _conversation(self, client, sender, receiver) -> str:
        response = client.post(
            "/api/chat/conversations",
            json={"receiverId": receiver["id"]},
            headers={"Authorization": f"Bearer {sender['token']}"},
        )
        return response.json()["data"]["id"]

    def test_typing_reaches_other_member(self, client):
        alice = _register(client, "alice")
        bob = _register(client, "bob")
        conversation_id = self._conversation(client, alice, bob)

        with client.websocket_connect(f"/ws?token={alice['token']}") as alice_ws:
            alice_ws.receive_json()
            with client.websocket_connect(f"/ws?token={bob['token']}") as bob_ws:
                bob_ws.receive_json()
                alice_ws.receive_json()  # user_online for bob

                bob_ws.send_json({"event": "join_conversation", "data": conversation_id})
                _barrier(bob_ws)
                alice_ws.send_json({"event": "join_conversation", "data": {"conversationId": conversation_id}})
                _barrier(alice_ws)

                alice_ws.send_json({"event": "typing_start", "data": {"conversationId": conversation_id}})
                typing = bob_ws.receive_json()
                assert typing["event"] == "user_typing"
                assert typing["data"]["userId"] == alice["id"]
                assert typing["data"]["isTyping"] is True

                # The typist gets nothing back: the next frame is the barrier's pong
                _barrier(alice_ws)

    def test_outsider_cannot_join(self, client):
        alice = _register(client, "alice")
        bob = _register(client, "bob")
        carol = _register(client, "carol")
        conversation_id = self._conversation(client, alice, bob)

        with client.websocket_connect(f"/ws?token={carol['token']}") as ws:
            ws.receive_json()
            ws.send_json({"event": "join_conversation", "data": conversation_id})
            error = ws.receive_json()
        assert error == {"event": "error", "data": {"message": "Access denied to this conversation"}}

    def test_rest_message_is_relayed(self, client):
        alice = _register(client, "alice")
        bob = _register(client, "bob")

        with client.websocket_connect(f"/ws?token={bob['token']}") as bob_ws:
            bob_ws.receive_json()
            response = client.post(
                "/api/chat/messages",
                json={"receiverId": bob["id"], "content": "hi bob"},
                headers={"Authorization": f"Bearer {alice['token']}"},
            )
            assert response.status_code == 201

            frame = bob_ws.receive_json()
        assert frame["event"] == "new_message"
        assert frame["data"]["message"]["content"] == "hi bob"
        assert frame["data"]["conversation"]["unreadCount"] == 1


class TestNotifications:
    def test_post_liked_delivers_notification(self, client):
        alice = _register(client, "alice")
        bob = _register(client, "bob")
        post_id = str(uuid.uuid4())

        with client.websocket_connect(f"/ws?token={bob['token']}") as bob_ws:
            bob_ws.receive_json()
            with client.websocket_connect(f"/ws?token={alice['token']}") as alice_ws:
                alice_ws.receive_json()
                bob_ws.receive_json()  # user_online for alice

                alice_ws.send_json({"event": "post_liked", "data": {"postId": post_id, "postAuthorId": bob["id"]}})
                frame = bob_ws.receive_json()
                assert frame["event"] == "new_notification"
                assert frame["data"]["type"] == "like"
                assert frame["data"]["postId"] == post_id
                assert frame["data"]["fromUser"]["username"] == "alice"
                assert frame["data"]["message"] == "alice liked your post"

        notifications = client.get(
            "/api/notifications", headers={"Authorization": f"Bearer {bob['token']}"}
        ).json()["data"]
        assert notifications["unreadCount"] == 1

    def test_user_followed_persists_follow(self, client):
        alice = _register(client, "alice")
        bob = _register(client, "bob")

        with client.websocket_connect(f"/ws?token={alice['token']}") as alice_ws:
            alice_ws.receive_json()
            alice_ws.send_json({"event": "user_followed", "data": {"followedUserId": bob["id"]}})
            _barrier(alice_ws)

        profile = client.get(f"/api/users/{bob['id']}").json()["data"]
        assert profile["followers"] == 1

    def test_bad_target_reports_error(self, client):
        alice = _register(client, "alice")
        with client.websocket_connect(f"/ws?token={alice['token']}") as ws:
            ws.receive_json()
            ws.send_json({"event": "user_followed", "data": {"followedUserId": alice["id"]}})
            error = ws.receive_json()
            assert error["event"] == "error"
            _barrier(ws)

    def test_unknown_recipient_reports_error(self, client):
        alice = _register(client, "alice")
        with client.websocket_connect(f"/ws?token={alice['token']}") as ws:
            ws.receive_json()
            ws.send_json(
                {"event": "post_liked", "data": {"postId": str(uuid.uuid4()), "postAuthorId": str(uuid.uuid4())}}
            )
            assert ws.receive_json() == {"event": "error", "data": {"message": "User not found"}}
            _barrier(ws)

        notifications = client.get(
            "/api/notifications", headers={"Authorization": f"Bearer {alice['token']}"}
        ).json()["data"]
        assert notifications["unreadCount"] == 0

    def test_new_post_is_silent_but_like_reaches_author(self, client, sample_image_bytes):
        alice = _register(client, "alice")
        bob = _register(client, "bob")
        client.post(f"/api/users/{bob['id']}/follow", headers=_auth(alice))

        with client.websocket_connect(f"/ws?token={bob['token']}") as bob_ws:
            bob_ws.receive_json()
            with client.websocket_connect(f"/ws?token={alice['token']}") as alice_ws:
                alice_ws.receive_json()
                bob_ws.receive_json()  # user_online for alice

                # Following bob does not subscribe alice to his new posts
                assert _create_post(client, bob, sample_image_bytes).status_code == 201
                _barrier(alice_ws)

                post_id = _create_post(client, alice, sample_image_bytes).json()["data"]["id"]
                bob_ws.send_json({"event": "post_liked", "data": {"postId": post_id, "postAuthorId": alice["id"]}})
                frame = alice_ws.receive_json()
                assert frame["event"] == "new_notification"
                assert frame["data"]["postId"] == post_id
                assert frame["data"]["fromUser"]["username"] == "bob"
