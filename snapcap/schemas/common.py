"""
SnapCap Backend: Shared Schemas and the Response Envelope
===========================================================

What:  The base model every API schema derives from, the success/error
       envelopes, pagination payloads and the health response.
Why:   Every endpoint answers with the same tagged shape:
           {success: true,  message?, data: T}
           {success: false, message, errors?: [{field, message}]}
       so clients branch on `success` and never probe for ad hoc keys.
How:   `APIModel` turns snake_case attributes into camelCase wire names
       (FastAPI serializes by alias) and reads ORM objects directly.
"""

from datetime import datetime
from typing import Any, Generic, List, Literal, Optional, TypeVar

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class APIModel(BaseModel):
    """Base for all SnapCap schemas: camelCase on the wire, ORM-readable."""

    model_config = {
        "from_attributes": True,
        "alias_generator": to_camel,
        "populate_by_name": True,
    }


# ══════════════════════════════════════════════════════════════════════════
# Envelopes
# ══════════════════════════════════════════════════════════════════════════


class Envelope(APIModel, Generic[T]):
    """Successful response: `data` carries the endpoint's payload."""

    success: Literal[True] = True
    message: Optional[str] = Field(default=None, description="Human readable outcome")
    data: Optional[T] = None


class MessageEnvelope(APIModel):
    """Successful response without a payload (deletes, acknowledgements)."""

    success: Literal[True] = True
    message: str


class ErrorDetail(APIModel):
    field: Optional[str] = Field(default=None, description="Offending input field")
    message: str


class ErrorEnvelope(APIModel):
    """Failure response produced by the global exception handlers."""

    success: Literal[False] = False
    message: str
    errors: Optional[List[ErrorDetail]] = None
    request_id: Optional[str] = None


def ok(data: Any = None, message: Optional[str] = None) -> Envelope:
    """Wrap a payload in the success envelope."""
    return Envelope(data=data, message=message)


# ══════════════════════════════════════════════════════════════════════════
# Pagination
# ══════════════════════════════════════════════════════════════════════════


class Pagination(APIModel):
    page: int
    limit: int
    total: int
    pages: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        pages = (total + limit - 1) // limit if limit else 0
        return cls(page=page, limit=limit, total=total, pages=pages)


class Page(Generic[T]):
    """Plain container services return: one page of items plus the total."""

    def __init__(self, items: List[T], total: int, page: int, limit: int):
        self.items = items
        self.total = total
        self.page = page
        self.limit = limit

    @property
    def pagination(self) -> Pagination:
        return Pagination.build(self.page, self.limit, self.total)


class ModifiedCount(APIModel):
    modified_count: int


class CountPayload(APIModel):
    count: int


# ══════════════════════════════════════════════════════════════════════════
# Health
# ══════════════════════════════════════════════════════════════════════════


class HealthResponse(APIModel):
    """
    Response of GET /health.

    status/database/gemini feed the load balancer probe; message,
    environment and timestamp are what the mobile client shows in its
    connection banner.
    """

    success: bool
    message: str = Field(description="SnapCap API is running")
    status: str = Field(description="healthy | degraded | unhealthy")
    environment: str
    version: str
    database: str = Field(description="connected | disconnected")
    gemini: str = Field(description="configured | circuit_open | unavailable | fallback")
    timestamp: datetime
    uptime_seconds: float
