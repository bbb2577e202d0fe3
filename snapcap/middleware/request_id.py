"""
SnapCap Backend: Request ID Middleware
========================================

What:  Assigns every request a short correlation id and echoes it back.
Why:   Error envelopes carry `requestId`, so a user report can be matched to
       the exact log lines of the failing request.
How:   Client-supplied X-Request-ID wins; otherwise the first 8 chars of a
       UUID4. Stored in a ContextVar (coroutine-local) and request.state.
"""

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

request_id_var: ContextVar[str] = ContextVar("request_id", default="")

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())[:8]
        request_id_var.set(rid)
        request.state.request_id = rid

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = rid
        return response
