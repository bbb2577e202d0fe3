"""
SnapCap Backend: Chat Endpoint Tests
======================================

What we test:
    ✅ Sending creates the conversation once and tracks per-side unread counts
    ✅ Message history is oldest-first and unread until the receiver reads it
    ✅ Only the receiver marks read, only the sender deletes
    ✅ Self-messages, empty text, bad JSON and non-participants are refused
    ✅ `new_message` goes out only after the message is committed
"""


async def _send(client, sender, receiver_id, content="hey!"):
    return await client.post(
        "/api/chat/messages",
        json={"receiverId": receiver_id, "content": content},
        headers=sender["headers"],
    )


async def test_message_round_trip(test_client, register):
    alice = await register("alice")
    bob = await register("bob")

    sent = await _send(test_client, alice, bob["id"], "  hey bob  ")
    assert sent.status_code == 201
    assert sent.json()["message"] == "Message sent successfully"
    message = sent.json()["data"]
    assert message["content"] == "hey bob"
    assert message["type"] == "text"
    assert message["isRead"] is False
    assert message["sender"]["id"] == alice["id"]
    assert message["receiver"]["id"] == bob["id"]

    await _send(test_client, alice, bob["id"], "are you there?")

    conversations = (await test_client.get("/api/chat/conversations", headers=bob["headers"])).json()["data"]
    assert len(conversations["conversations"]) == 1
    conversation = conversations["conversations"][0]
    assert conversation["participant"]["id"] == alice["id"]
    assert conversation["unreadCount"] == 2
    assert conversation["id"] == message["conversationId"]

    history = await test_client.get(
        f"/api/chat/conversations/{conversation['id']}/messages", headers=bob["headers"]
    )
    assert history.status_code == 200
    messages = history.json()["data"]["messages"]
    assert [m["content"] for m in messages] == ["hey bob", "are you there?"]
    assert all(m["isRead"] is False for m in messages)

    unread = await test_client.get("/api/chat/unread-count", headers=bob["headers"])
    assert unread.json()["data"] == {"unreadCount": 2}


async def test_mark_read_by_receiver_only(test_client, register):
    alice = await register("alice")
    bob = await register("bob")
    message_id = (await _send(test_client, alice, bob["id"])).json()["data"]["id"]

    denied = await test_client.put(f"/api/chat/messages/{message_id}/read", headers=alice["headers"])
    assert denied.status_code == 403

    read = await test_client.put(f"/api/chat/messages/{message_id}/read", headers=bob["headers"])
    assert read.status_code == 200
    assert read.json()["data"]["isRead"] is True
    assert read.json()["data"]["readAt"] is not None

    unread = await test_client.get("/api/chat/unread-count", headers=bob["headers"])
    assert unread.json()["data"]["unreadCount"] == 0


async def test_read_all(test_client, register):
    alice = await register("alice")
    bob = await register("bob")
    conversation_id = (await _send(test_client, alice, bob["id"])).json()["data"]["conversationId"]
    await _send(test_client, alice, bob["id"], "second")

    response = await test_client.put(f"/api/chat/conversations/{conversation_id}/read-all", headers=bob["headers"])
    assert response.status_code == 200
    assert response.json()["data"] == {"modifiedCount": 2}


async def test_delete_by_sender_only(test_client, register):
    alice = await register("alice")
    bob = await register("bob")
    message_id = (await _send(test_client, alice, bob["id"])).json()["data"]["id"]

    denied = await test_client.delete(f"/api/chat/messages/{message_id}", headers=bob["headers"])
    assert denied.status_code == 403

    deleted = await test_client.delete(f"/api/chat/messages/{message_id}", headers=alice["headers"])
    assert deleted.status_code == 200

    unread = await test_client.get("/api/chat/unread-count", headers=bob["headers"])
    assert unread.json()["data"]["unreadCount"] == 0


async def test_cannot_message_yourself(test_client, register):
    alice = await register("alice")
    response = await _send(test_client, alice, alice["id"])
    assert response.status_code == 400
    assert response.json()["message"] == "Cannot send message to yourself"


async def test_text_message_needs_content(test_client, register):
    alice = await register("alice")
    bob = await register("bob")
    response = await _send(test_client, alice, bob["id"], "   ")
    assert response.status_code == 400
    assert response.json()["message"] == "Message content is required for text messages"


async def test_invalid_json_body(test_client, register):
    alice = await register("alice")
    response = await test_client.post(
        "/api/chat/messages",
        content=b"{not json",
        headers={**alice["headers"], "Content-Type": "application/json"},
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Request body must be valid JSON"


async def test_outsider_cannot_read_conversation(test_client, register):
    alice = await register("alice")
    bob = await register("bob")
    carol = await register("carol")
    conversation_id = (await _send(test_client, alice, bob["id"])).json()["data"]["conversationId"]

    response = await test_client.get(f"/api/chat/conversations/{conversation_id}/messages", headers=carol["headers"])
    assert response.status_code == 403


async def test_start_conversation_is_idempotent(test_client, register):
    alice = await register("alice")
    bob = await register("bob")

    first = await test_client.post("/api/chat/conversations", json={"receiverId": bob["id"]}, headers=alice["headers"])
    second = await test_client.post("/api/chat/conversations", json={"receiverId": alice["id"]}, headers=bob["headers"])
    assert first.status_code == second.status_code == 200
    assert first.json()["message"] == "Chat started successfully"
    assert first.json()["data"]["id"] == second.json()["data"]["id"]


async def test_undecodable_json_body(test_client, register):
    alice = await register("alice")
    response = await test_client.post(
        "/api/chat/messages",
        content=b'{"content": "\xff\xfe"}',
        headers={**alice["headers"], "Content-Type": "application/json"},
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Request body must be valid JSON"


async def test_message_committed_before_relay(test_client, register, monkeypatch):
    from sqlalchemy import func, select

    from snapcap.database import async_session_factory
    from snapcap.models.chat import Message
    from snapcap.realtime.hub import hub

    alice = await register("alice")
    bob = await register("bob")
    seen = []

    async def emit_to_user(user_id, event, payload):
        # A separate session only sees committed rows
        async with async_session_factory() as session:
            seen.append((event, await session.scalar(select(func.count()).select_from(Message))))
        return 1

    monkeypatch.setattr(hub, "emit_to_user", emit_to_user)

    response = await _send(test_client, alice, bob["id"])
    assert response.status_code == 201
    assert seen == [("new_message", 1)]
