"""
SnapCap Backend: Request Dependencies
=======================================

What:  FastAPI dependencies shared by the routers: the authenticated user,
       the optional user, page/limit parsing and form-model helpers.
Why:   Auth and pagination must fail the same way on every endpoint, and
       must fail before any store access.
How:   `get_current_user` resolves the bearer token, loads the user and
       stores it on `request.state.user` (per-user rate limits read it).
       `optional_user` swallows only authentication failures.

Usage:
    @router.get("/")
    async def feed(
        viewer: Optional[User] = Depends(optional_user),
        paging: PageParams = Depends(page_params),
        db: AsyncSession = Depends(get_db_session),
    ): ...
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Type, TypeVar

from fastapi import Depends, Query, Request
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from snapcap.database import get_db_session
from snapcap.exceptions import AuthenticationError, ValidationError
from snapcap.models.user import User
from snapcap.services.auth_service import auth_service
from snapcap.services.security import decode_token, extract_bearer

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

MAX_LIMIT = 100
PAGE_ERROR = "Page must be a positive integer"
LIMIT_ERROR = "Limit must be between 1 and 100"


# ══════════════════════════════════════════════════════════════════════════
# Authentication
# ══════════════════════════════════════════════════════════════════════════


async def get_current_user(request: Request, db: AsyncSession = Depends(get_db_session)) -> User:
    """Require a valid access token (401 otherwise)."""
    token = extract_bearer(request.headers.get("Authorization"))
    user_id = decode_token(token)
    user = await auth_service.resolve_user(db, user_id)
    request.state.user = user
    return user


async def optional_user(request: Request, db: AsyncSession = Depends(get_db_session)) -> Optional[User]:
    """The caller if a valid token was sent, else None."""
    token = extract_bearer(request.headers.get("Authorization"))
    if not token:
        return None
    try:
        user = await auth_service.resolve_user(db, decode_token(token))
    except AuthenticationError as e:
        logger.debug("Ignoring bad token on optional auth route: %s", e.message)
        return None
    request.state.user = user
    return user


# ══════════════════════════════════════════════════════════════════════════
# Pagination
# ══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class PageParams:
    page: int
    limit: int


def _positive_int(raw: Optional[str], default: int) -> Optional[int]:
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return None


def pagination(default_limit: int = 20):
    """
    Build a dependency parsing `page` and `limit`.

    Both arrive as raw strings so a non-numeric value gets the same
    400 message as an out-of-range one.
    """

    async def dependency(
        page: Optional[str] = Query(default=None, description="Page number, starting at 1"),
        limit: Optional[str] = Query(default=None, description="Items per page (1-100)"),
    ) -> PageParams:
        errors: List[Dict[str, str]] = []
        page_value = _positive_int(page, 1)
        limit_value = _positive_int(limit, default_limit)
        if page_value is None or page_value < 1:
            errors.append({"field": "page", "message": PAGE_ERROR})
        if limit_value is None or not 1 <= limit_value <= MAX_LIMIT:
            errors.append({"field": "limit", "message": LIMIT_ERROR})
        if errors:
            raise ValidationError(errors=errors)
        return PageParams(page=page_value, limit=limit_value)

    return dependency


page_params = pagination(20)
message_page_params = pagination(50)


# ══════════════════════════════════════════════════════════════════════════
# Form helpers
# ══════════════════════════════════════════════════════════════════════════


def validation_errors(exc: PydanticValidationError) -> List[Dict[str, str]]:
    """pydantic errors → [{field, message}] with camelCase field paths."""
    errors = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path"))
        message = error.get("msg", "Invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        errors.append({"field": field or None, "message": message})
    return errors


def build_model(model: Type[M], **data: Any) -> M:
    """Validate multipart form values through a schema (400 on failure)."""
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(errors=validation_errors(e))


def json_field(raw: Optional[str], field: str) -> Any:
    """Decode a JSON-encoded form field; empty means absent."""
    if raw is None or raw == "":
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        raise ValidationError(message=f"{field} must be valid JSON", field=field)
