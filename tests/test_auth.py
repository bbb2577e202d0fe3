"""
SnapCap Backend: Auth Endpoint Tests
======================================

What we test:
    ✅ Registration returns the envelope with a token pair
    ✅ Duplicate email/username and weak passwords are rejected with 400
    ✅ Login failures use one message for unknown email and bad password
    ✅ Protected routes distinguish missing and invalid tokens
    ✅ Refresh tokens are single use
"""

PASSWORD = "Passw0rd"


async def test_register_returns_token_pair(register):
    account = await register("alice")
    assert account["token"]
    assert account["refresh"]
    assert account["user"]["username"] == "alice"
    assert account["user"]["email"] == "alice@example.com"
    assert "passwordHash" not in account["user"]


async def test_duplicate_email_rejected(test_client, register):
    await register("alice")
    response = await test_client.post(
        "/api/auth/register",
        json={
            "username": "alice2",
            "email": "ALICE@example.com",
            "password": PASSWORD,
            "displayName": "Alice Two",
        },
    )
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "Email already exists"


async def test_duplicate_username_rejected(test_client, register):
    await register("alice")
    response = await test_client.post(
        "/api/auth/register",
        json={"username": "alice", "email": "other@example.com", "password": PASSWORD, "displayName": "A"},
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Username already exists"


async def test_weak_password_lists_field_error(test_client, database):
    response = await test_client.post(
        "/api/auth/register",
        json={"username": "bob", "email": "bob@example.com", "password": "password", "displayName": "Bob"},
    )
    assert response.status_code == 400
    body = response.json()
    assert body["message"] == "Validation failed"
    assert any(error["field"] == "password" for error in body["errors"])


async def test_login_success_and_failure(test_client, register):
    await register("alice")

    ok = await test_client.post("/api/auth/login", json={"email": "alice@example.com", "password": PASSWORD})
    assert ok.status_code == 200
    assert ok.json()["message"] == "Login successful"
    assert ok.json()["data"]["user"]["isOnline"] is True

    wrong = await test_client.post("/api/auth/login", json={"email": "alice@example.com", "password": "Wrong123"})
    unknown = await test_client.post("/api/auth/login", json={"email": "nobody@example.com", "password": PASSWORD})
    assert wrong.status_code == unknown.status_code == 401
    assert wrong.json()["message"] == unknown.json()["message"] == "Invalid email or password"


async def test_me_requires_token(test_client, database):
    missing = await test_client.get("/api/auth/me")
    assert missing.status_code == 401
    assert missing.json()["message"] == "Access token required"

    invalid = await test_client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-token"})
    assert invalid.status_code == 401
    assert invalid.json()["message"] == "Invalid token"


async def test_me_returns_own_profile(test_client, register):
    account = await register("alice")
    response = await test_client.get("/api/auth/me", headers=account["headers"])
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["id"] == account["id"]
    assert data["followers"] == 0


async def test_refresh_token_rotates_once(test_client, register):
    account = await register("alice")

    first = await test_client.post("/api/auth/refresh-token", json={"refreshToken": account["refresh"]})
    assert first.status_code == 200
    rotated = first.json()["data"]
    assert rotated["refreshToken"] != account["refresh"]

    replay = await test_client.post("/api/auth/refresh-token", json={"refreshToken": account["refresh"]})
    assert replay.status_code == 401
    assert replay.json()["message"] == "Invalid refresh token"


async def test_refresh_requires_token(test_client, database):
    response = await test_client.post("/api/auth/refresh-token", json={})
    assert response.status_code == 400
    assert response.json()["message"] == "Refresh token required"


async def test_logout_revokes_refresh_token(test_client, register):
    account = await register("alice")
    response = await test_client.post(
        "/api/auth/logout", json={"refreshToken": account["refresh"]}, headers=account["headers"]
    )
    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Logout successful"}

    replay = await test_client.post("/api/auth/refresh-token", json={"refreshToken": account["refresh"]})
    assert replay.status_code == 401
