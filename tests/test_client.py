"""
SnapCap Client: Configuration and REST Wrapper Tests
======================================================

What we test:
    ✅ Override > environment > default precedence for both URLs
    ✅ Socket URL derivation (scheme swap, /api dropped, /ws appended)
    ✅ Envelope unwrapping and APIError on failures (httpx.MockTransport)
"""

import json

import httpx
import pytest

from snapcap.client.api import APIError, SnapCapAPI
from snapcap.client.config import DEFAULT_API_URL, ClientConfig, socket_url_for


class TestClientConfig:
    def test_defaults(self):
        config = ClientConfig.resolve(env={})
        assert config.api_url == DEFAULT_API_URL
        assert config.socket_url == "ws://localhost:5000/ws"
        assert config.server_url == "http://localhost:5000"

    def test_environment(self):
        config = ClientConfig.resolve(env={"SNAPCAP_API_URL": "https://snapcap.example.com/api/"})
        assert config.api_url == "https://snapcap.example.com/api"
        assert config.socket_url == "wss://snapcap.example.com/ws"

    def test_override_beats_environment(self):
        config = ClientConfig.resolve(
            overrides={"api_url": "http://10.0.2.2:5000/api", "socket_url": "ws://10.0.2.2:9000/ws"},
            env={"SNAPCAP_API_URL": "https://ignored.example.com/api", "SNAPCAP_SOCKET_URL": "wss://ignored/ws"},
        )
        assert config.api_url == "http://10.0.2.2:5000/api"
        assert config.socket_url == "ws://10.0.2.2:9000/ws"

    @pytest.mark.parametrize(
        "api_url,expected",
        [
            ("http://host:5000/api", "ws://host:5000/ws"),
            ("https://host/api", "wss://host/ws"),
            ("https://host/v2/api", "wss://host/v2/ws"),
            ("http://host:5000", "ws://host:5000/ws"),
        ],
    )
    def test_socket_url_for(self, api_url, expected):
        assert socket_url_for(api_url) == expected


def _api(handler) -> SnapCapAPI:
    config = ClientConfig.resolve(overrides={"api_url": "http://snapcap.test/api"}, env={})
    return SnapCapAPI(config=config, transport=httpx.MockTransport(handler))


class TestSnapCapAPI:
    async def test_login_stores_token_and_sends_it(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if request.url.path == "/api/auth/login":
                body = json.loads(request.content)
                assert body == {"email": "alice@example.com", "password": "Passw0rd"}
                return httpx.Response(200, json={"success": True, "data": {"accessToken": "tok-1"}})
            return httpx.Response(200, json={"success": True, "data": {"friends": [{"id": "f1"}], "total": 1}})

        async with _api(handler) as api:
            await api.login("alice@example.com", "Passw0rd")
            friends = await api.get_friends()

        assert friends == [{"id": "f1"}]
        assert seen[1].headers["Authorization"] == "Bearer tok-1"
        assert str(seen[1].url) == "http://snapcap.test/api/friends"

    async def test_error_envelope_raises(self):
        def handler(request):
            return httpx.Response(
                400,
                json={"success": False, "message": "Validation failed", "errors": [{"field": "page", "message": "bad"}]},
            )

        async with _api(handler) as api:
            with pytest.raises(APIError) as exc_info:
                await api.request("GET", "/posts?page=0")
        assert exc_info.value.status == 400
        assert exc_info.value.message == "Validation failed"
        assert exc_info.value.errors[0]["field"] == "page"

    async def test_network_error_is_status_zero(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with _api(handler) as api:
            with pytest.raises(APIError) as exc_info:
                await api.get_stories()
            assert exc_info.value.status == 0
            assert await api.test_connection() is False

    async def test_connection_hits_health_at_server_root(self):
        paths = []

        def handler(request):
            paths.append(request.url.path)
            return httpx.Response(200, json={"success": True})

        async with _api(handler) as api:
            assert await api.test_connection() is True
        assert paths == ["/health"]
