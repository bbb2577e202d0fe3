"""
SnapCap Client: REST API Wrapper
==================================

Thin httpx wrapper that adds the bearer token and unwraps the
`{success, message, data}` envelope.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from snapcap.client.config import ClientConfig

logger = logging.getLogger(__name__)


class APIError(Exception):
    """A non-success envelope or an unreachable server (status 0)."""

    def __init__(self, status: int, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        self.status = status
        self.message = message
        self.errors = errors or []
        super().__init__(f"{status}: {message}")


class SnapCapAPI:
    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ):
        self.config = config or ClientConfig.resolve()
        self.token = token
        self._client = httpx.AsyncClient(transport=transport, timeout=timeout)

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    async def request(self, method: str, path: str, **kwargs) -> Any:
        """Call `path` under the API base and return the envelope's `data`."""
        url = path if path.startswith("http") else f"{self.config.api_url}{path}"
        try:
            response = await self._client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.HTTPError as e:
            raise APIError(0, f"Request failed: {e}") from e

        try:
            body = response.json()
        except ValueError:
            raise APIError(response.status_code, response.text or response.reason_phrase)

        if response.is_error or not body.get("success", False):
            raise APIError(response.status_code, body.get("message", "Request failed"), body.get("errors"))
        return body.get("data")

    async def test_connection(self) -> bool:
        try:
            response = await self._client.get(f"{self.config.server_url}/health")
        except httpx.HTTPError as e:
            logger.warning("SnapCap server unreachable: %s", e)
            return False
        return response.status_code == 200

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        data = await self.request("POST", "/auth/login", json={"email": email, "password": password})
        self.token = data["accessToken"]
        return data

    async def get_friends(self) -> List[Dict[str, Any]]:
        return (await self.request("GET", "/friends"))["friends"]

    async def get_stories(self) -> List[Dict[str, Any]]:
        return (await self.request("GET", "/stories"))["stories"]

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "SnapCapAPI":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()
