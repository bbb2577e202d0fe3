"""
SnapCap Backend: Test Configuration (conftest.py)
===================================================

What:  Shared pytest fixtures for the whole suite.
How:   The settings singleton is built on first import, so the environment
       is pointed at a throwaway SQLite file and media directory BEFORE any
       snapcap module is imported. Gemini is left unconfigured, which makes
       every caption call take the offline path.

Fixture Hierarchy:
    Function-scoped:
    ├── database:           fresh schema, rate limiters and hub per test
    ├── test_client:        HTTPX AsyncClient bound to the ASGI app
    ├── register:           coroutine creating an account, returns its token
    ├── temp_storage:       StorageService rooted in tmp_path
    └── sample_image_bytes: smallest valid JPEG
"""

import os
import tempfile

_TEST_DIR = tempfile.mkdtemp(prefix="snapcap_test_")

os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR}/snapcap_test.db"
os.environ["STORAGE_ROOT"] = os.path.join(_TEST_DIR, "storage")
os.environ["GEMINI_API_KEY"] = ""
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["ENVIRONMENT"] = "test"
os.environ["RATE_LIMIT_REQUESTS"] = "100000"
os.environ["AUTH_RATE_LIMIT_REQUESTS"] = "10000"

from typing import Any, Dict  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

import snapcap.models  # noqa: E402,F401  registers every table
from snapcap.database import Base, engine  # noqa: E402
from snapcap.middleware.rate_limit import reset_limiters  # noqa: E402
from snapcap.realtime.hub import hub  # noqa: E402

PASSWORD = "Passw0rd"


@pytest_asyncio.fixture
async def database():
    """
    Creates every table before the test and drops them after it.

    Rate limiters and the connection hub are process globals, so they are
    reset here as well.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    reset_limiters()
    hub.clear()
    yield
    hub.clear()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def test_client(database):
    """
    HTTPX AsyncClient routed straight into the FastAPI app.

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
            assert response.status_code == 200
    """
    from snapcap.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def register(test_client):
    """
    Returns a coroutine that signs up `username` and hands back
    {"id", "token", "refresh", "headers", "user"}.
    """

    async def _register(username: str = "alice", password: str = PASSWORD) -> Dict[str, Any]:
        response = await test_client.post(
            "/api/auth/register",
            json={
                "username": username,
                "email": f"{username}@example.com",
                "password": password,
                "displayName": username.title(),
            },
        )
        assert response.status_code == 201, response.text
        data = response.json()["data"]
        return {
            "id": data["user"]["id"],
            "token": data["accessToken"],
            "refresh": data["refreshToken"],
            "headers": {"Authorization": f"Bearer {data['accessToken']}"},
            "user": data["user"],
        }

    return _register


@pytest.fixture
def temp_storage(tmp_path):
    """A StorageService writing into this test's tmp_path."""
    from snapcap.services.storage_service import StorageService

    return StorageService(storage_root=str(tmp_path / "storage"))


@pytest.fixture
def sample_image_bytes():
    """
    Minimal JPEG: Start of Image (FFD8) + JFIF marker + End of Image (FFD9).
    Not a real photograph, but enough for MIME and size checks.
    """
    return (
        b'\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00'
        b'\xff\xd9'
    )
