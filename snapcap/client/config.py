"""
SnapCap Client: Endpoint Configuration
========================================

Resolves the REST base URL and the gateway URL once per client.

Precedence: explicit override > environment > computed default.
    SNAPCAP_API_URL     default http://localhost:5000/api
    SNAPCAP_SOCKET_URL  default derived from the API URL: `/api` dropped,
                        http -> ws, https -> wss, `/ws` appended
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional
from urllib.parse import urlsplit, urlunsplit

DEFAULT_API_URL = "http://localhost:5000/api"
API_URL_ENV = "SNAPCAP_API_URL"
SOCKET_URL_ENV = "SNAPCAP_SOCKET_URL"


def _normalize(url: str) -> str:
    return url.strip().rstrip("/")


def socket_url_for(api_url: str) -> str:
    parts = urlsplit(_normalize(api_url))
    scheme = "wss" if parts.scheme in ("https", "wss") else "ws"
    path = parts.path
    if path.endswith("/api"):
        path = path[: -len("/api")]
    return urlunsplit((scheme, parts.netloc, f"{path}/ws", "", ""))


@dataclass(frozen=True)
class ClientConfig:
    api_url: str
    socket_url: str

    @property
    def server_url(self) -> str:
        """Origin of the API, where /health and /media live."""
        url = self.api_url
        return url[: -len("/api")] if url.endswith("/api") else url

    @classmethod
    def resolve(
        cls,
        overrides: Optional[Mapping[str, str]] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> "ClientConfig":
        overrides = overrides or {}
        env = os.environ if env is None else env

        api_url = _normalize(overrides.get("api_url") or env.get(API_URL_ENV) or DEFAULT_API_URL)
        socket_url = overrides.get("socket_url") or env.get(SOCKET_URL_ENV)
        socket_url = _normalize(socket_url) if socket_url else socket_url_for(api_url)
        return cls(api_url=api_url, socket_url=socket_url)
