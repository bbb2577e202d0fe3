"""
SnapCap Backend: Rate Limiting
================================

What:  In-memory sliding-window limiters: one global per-IP limit applied as
       middleware, plus named per-action limits applied as route dependencies
       (keyed by user id when authenticated, else by IP).
Why:   Cheap protection against credential stuffing and runaway clients on a
       single instance.
How:   Each key maps to a list of request timestamps; timestamps older than
       the window are dropped on every hit; a full list means 429.

Lifecycle:
    Limiter state is process-scoped. `reset_limiters()` is called from the
    application lifespan at startup and shutdown (and by the tests).

Scaling gap:
    Counters are per process. Several workers or instances each enforce the
    limit separately; a shared counter store is needed to make it global.
"""

import logging
import time
from collections import defaultdict
from typing import Callable, Dict, List, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from snapcap.config import settings
from snapcap.exceptions import RateLimitExceededError
from snapcap.middleware.logging import client_ip
from snapcap.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)

GLOBAL_LIMIT_MESSAGE = "Too many requests from this IP, please try again later."


class SlidingWindowLimiter:
    """
    Sliding-window counter.

    `clock` is injectable so tests can move time without sleeping.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: int,
        clock: Callable[[], float] = time.time,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock
        self._requests: Dict[str, List[float]] = defaultdict(list)
        self._hits = 0

    def hit(self, key: str) -> Optional[int]:
        """
        Record one request for `key`.

        Returns:
            None if allowed, else the seconds until a slot frees up
        """
        now = self.clock()
        window_start = now - self.window_seconds
        timestamps = [ts for ts in self._requests[key] if ts > window_start]
        self._requests[key] = timestamps

        if len(timestamps) >= self.max_requests:
            return int(timestamps[0] + self.window_seconds - now) + 1

        timestamps.append(now)
        self._hits += 1
        if self._hits % 1000 == 0:
            self._cleanup(window_start)
        return None

    def _cleanup(self, window_start: float) -> None:
        inactive = [
            key for key, timestamps in self._requests.items()
            if not timestamps or timestamps[-1] <= window_start
        ]
        for key in inactive:
            del self._requests[key]
        if inactive:
            logger.debug("Cleaned up %d inactive rate limit keys", len(inactive))

    def clear(self) -> None:
        self._requests.clear()
        self._hits = 0

    def __len__(self) -> int:
        return len(self._requests)


# ══════════════════════════════════════════════════════════════════════════
# Process-scoped registry
# ══════════════════════════════════════════════════════════════════════════

global_limiter = SlidingWindowLimiter(settings.rate_limit_requests, settings.rate_limit_window)
_action_limiters: Dict[str, SlidingWindowLimiter] = {}


def reset_limiters() -> None:
    global_limiter.clear()
    for limiter in _action_limiters.values():
        limiter.clear()


def action_limit(
    name: str,
    max_requests: int,
    window_seconds: int,
    message: str = "Too many requests, please try again later",
):
    """
    Build a route dependency enforcing a named per-action limit.

    Example:
        @router.post("/login", dependencies=[Depends(auth_limit)])
    """
    limiter = _action_limiters.setdefault(name, SlidingWindowLimiter(max_requests, window_seconds))

    async def dependency(request: Request) -> None:
        user = getattr(request.state, "user", None)
        key = str(user.id) if user is not None else client_ip(request)
        retry_after = limiter.hit(key)
        if retry_after is not None:
            logger.warning("Action limit '%s' exceeded for %s", name, key)
            raise RateLimitExceededError(message=message, retry_after=retry_after, context={"action": name})

    return dependency


# ══════════════════════════════════════════════════════════════════════════
# Global Middleware
# ══════════════════════════════════════════════════════════════════════════

class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-IP limit on every /api request."""

    EXCLUDED_PATHS = {"/health", "/docs", "/openapi.json", "/redoc"}

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in self.EXCLUDED_PATHS or not path.startswith("/api"):
            return await call_next(request)

        ip = client_ip(request)
        retry_after = global_limiter.hit(ip)
        if retry_after is not None:
            logger.warning(
                "Rate limit exceeded for IP %s: %d requests in %ds window",
                ip,
                global_limiter.max_requests,
                global_limiter.window_seconds,
            )
            return JSONResponse(
                status_code=429,
                content={
                    "success": False,
                    "message": GLOBAL_LIMIT_MESSAGE,
                    "requestId": request_id_var.get("") or None,
                },
                headers={"Retry-After": str(retry_after)},
            )

        return await call_next(request)
