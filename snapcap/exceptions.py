"""
SnapCap Backend: Custom Exception Hierarchy
=============================================

What:  Application-specific exceptions for every error class the API reports.
Why:   Services raise domain errors; one set of global handlers turns them
       into the uniform `{success: false, message, errors?}` envelope.
How:   Each exception carries a user-facing message, an HTTP status and an
       optional context dict (logged, never returned).
Who:   Raised by services, dependencies and middleware; caught in main.py.

Exception Hierarchy:
    SnapCapError (base)                → 500
    ├── ValidationError                → 400 (field-level `errors` list)
    ├── ConflictError                  → 400 (duplicate unique field)
    ├── AuthenticationError            → 401 (missing / invalid / expired)
    ├── ForbiddenError                 → 403 (ownership, block, access)
    ├── NotFoundError                  → 404
    ├── RateLimitExceededError         → 429
    ├── CircuitBreakerOpenError        → 503 (caught inside the caption service)
    ├── FileStorageError               → 500 ("Upload failed")
    └── DatabaseError                  → 500
"""

from typing import Any, Dict, List, Optional


class SnapCapError(Exception):
    """
    Base exception for all SnapCap application errors.

    Attributes:
        message:     User-facing error description (returned in the envelope)
        context:     Debug info (logged but NOT returned to client)
        status_code: HTTP status the global handler responds with
    """

    status_code = 500

    def __init__(
        self,
        message: str = "Internal server error",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(SnapCapError):
    """
    Raised when client input fails validation.

    `errors` is the field-level list returned to the client, each item shaped
    `{"field": ..., "message": ...}`. A single-field error may be raised with
    just `message` and `field`.
    """

    status_code = 400

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        errors: Optional[List[Dict[str, Any]]] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field
        self.errors = errors


class ConflictError(SnapCapError):
    """
    Raised when a unique field collides with an existing row.

    The message names the offending field: "Email already exists".
    """

    status_code = 400

    def __init__(self, field: str, context: Optional[Dict[str, Any]] = None):
        label = field[:1].upper() + field[1:]
        ctx = context or {}
        ctx["field"] = field
        super().__init__(message=f"{label} already exists", context=ctx)
        self.field = field


class AuthenticationError(SnapCapError):
    """
    Raised when the caller cannot be identified.

    The three token failures are kept distinct so clients can tell a stale
    session (refresh and retry) from a forged or corrupted token (log out).
    """

    status_code = 401

    MISSING = "Access token required"
    INVALID = "Invalid token"
    EXPIRED = "Token expired"
    USER_NOT_FOUND = "Invalid token - user not found"

    def __init__(
        self,
        message: str = INVALID,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ForbiddenError(SnapCapError):
    """Raised when an identified caller may not touch a resource."""

    status_code = 403

    def __init__(
        self,
        message: str = "Access denied",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(SnapCapError):
    """
    Raised when a requested resource does not exist.

    Services pass the exact client message ("Post not found"); the resource
    name and id only go to the log context.
    """

    status_code = 404

    def __init__(
        self,
        message: str = "Resource not found",
        resource: Optional[str] = None,
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if resource:
            ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = str(resource_id)
        super().__init__(message=message, context=ctx)


class RateLimitExceededError(SnapCapError):
    """Raised when a caller exceeds a sliding-window limit."""

    status_code = 429

    def __init__(
        self,
        message: str = "Too many requests, please try again later",
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class CircuitBreakerOpenError(SnapCapError):
    """
    Raised by the circuit breaker while it is OPEN.

    The caption service catches it and serves the offline caption, so the
    HTTP layer only sees it if another caller uses the breaker directly.
    """

    status_code = 503

    def __init__(
        self,
        recovery_time: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            "AI service is temporarily unavailable due to repeated failures. "
            f"It will be retried in approximately {recovery_time} seconds."
        )
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(message=message, context=ctx)
        self.recovery_time = recovery_time


class FileStorageError(SnapCapError):
    """
    Raised when writing or deleting media fails.

    The client always sees "Upload failed"; the OS error is in the context.
    """

    status_code = 500

    def __init__(
        self,
        message: str = "Upload failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(SnapCapError):
    """Raised when a database operation fails unexpectedly."""

    status_code = 500

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
