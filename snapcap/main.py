"""
SnapCap Backend: FastAPI Application Factory
==============================================

What:  Builds the SnapCap ASGI app: one FastAPI instance serving REST,
       media and WebSocket traffic.
How:   create_app() assembles middleware, exception handlers, the REST
       routers, the media route and the /ws gateway.
Who:   uvicorn (`uvicorn snapcap.main:app`) and the test suite.

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                      FastAPI App                         │
    │                                                          │
    │  Middleware:  CORS → Req ID → Logging → Rate Limit → GZip │
    │                                                          │
    │  REST:   /api/{auth,users,posts,stories,comments,duets,   │
    │                chat,notifications,search,friends}        │
    │  Other:  /health   /media/{publicId}   /ws (WebSocket)    │
    │                                                          │
    │  Errors: every failure → {success: false, message,       │
    │          errors?, requestId}                             │
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging, config validation (logged, never fatal), storage
              directory, fresh rate limiters
    Shutdown: close sockets, clear the hub, dispose the database engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from snapcap import __version__
from snapcap.config import settings
from snapcap.database import dispose_engine
from snapcap.dependencies import validation_errors
from snapcap.exceptions import (
    CircuitBreakerOpenError,
    DatabaseError,
    FileStorageError,
    RateLimitExceededError,
    SnapCapError,
    ValidationError,
)
from snapcap.middleware.logging import RequestLoggingMiddleware
from snapcap.middleware.rate_limit import RateLimitMiddleware, reset_limiters
from snapcap.middleware.request_id import RequestIDMiddleware, request_id_var
from snapcap.realtime import gateway
from snapcap.realtime.hub import hub
from snapcap.routes import (
    auth,
    chat,
    comments,
    duets,
    friends,
    health,
    media,
    notifications,
    posts,
    search,
    stories,
    users,
)
from snapcap.schemas.common import ErrorEnvelope

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure logging once for the whole process.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    Third-party loggers that chatter at INFO are raised to WARNING.
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("=" * 60)
    logger.info("SnapCap Backend %s starting up (%s)...", __version__, settings.environment)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Not fatal: /health must still answer so the problem is visible
        logger.error("Configuration error: %s", str(e))
        logger.error("Fix the configuration and restart the server.")

    if not settings.gemini_configured:
        logger.warning("GEMINI_API_KEY not set: captions use the offline generator")

    storage = Path(settings.storage_root)
    storage.mkdir(parents=True, exist_ok=True)
    logger.info("Storage directory: %s", storage.resolve())

    reset_limiters()
    hub.clear()

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("WebSocket gateway at ws://%s:%d/ws", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("SnapCap Backend shutting down (%d sockets open)...", len(hub))
    await hub.close_all()
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def error_response(
    status_code: int,
    message: str,
    errors: Optional[list] = None,
    headers: Optional[dict] = None,
) -> JSONResponse:
    body = ErrorEnvelope(message=message, errors=errors, request_id=request_id_var.get("") or None)
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", by_alias=True, exclude_none=True),
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map every failure onto the error envelope.

    Handler hierarchy:
        ValidationError, RequestValidationError,
        pydantic ValidationError      → 400 with field errors
        RateLimitExceededError        → 429 + Retry-After
        CircuitBreakerOpenError       → 503 + Retry-After
        DatabaseError                 → 500 generic message, details logged
        FileStorageError              → 500 "Upload failed", details logged
        SnapCapError (base)           → its status_code and message
        HTTPException (routing)       → 404 "API endpoint not found", 405, ...
        Exception (fallback)          → 500 "Internal server error"

    Stack traces and context never reach the response body.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        rid = request_id_var.get("")
        logger.warning("[%s] Validation error: %s", rid, exc.message)
        errors = exc.errors
        if errors is None and exc.field:
            errors = [{"field": exc.field, "message": exc.message}]
        return error_response(400, exc.message, errors)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        errors = validation_errors(exc)
        logger.warning("[%s] Request validation failed: %s", request_id_var.get(""), errors[:3])
        return error_response(400, "Validation failed", errors)

    @app.exception_handler(PydanticValidationError)
    async def handle_pydantic_error(request: Request, exc: PydanticValidationError):
        return error_response(400, "Validation failed", validation_errors(exc))

    @app.exception_handler(RateLimitExceededError)
    async def handle_rate_limit(request: Request, exc: RateLimitExceededError):
        return error_response(429, exc.message, headers={"Retry-After": str(exc.retry_after)})

    @app.exception_handler(CircuitBreakerOpenError)
    async def handle_circuit_breaker(request: Request, exc: CircuitBreakerOpenError):
        logger.warning("[%s] Circuit breaker open: %s", request_id_var.get(""), exc.message)
        return error_response(503, exc.message, headers={"Retry-After": str(exc.recovery_time)})

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        logger.error("[%s] Database error: %s | Context: %s", request_id_var.get(""), exc.message, exc.context)
        return error_response(500, "Internal server error")

    @app.exception_handler(FileStorageError)
    async def handle_file_storage_error(request: Request, exc: FileStorageError):
        logger.error("[%s] File storage error: %s | Context: %s", request_id_var.get(""), exc.message, exc.context)
        return error_response(500, exc.message)

    @app.exception_handler(SnapCapError)
    async def handle_snapcap_error(request: Request, exc: SnapCapError):
        if exc.status_code >= 500:
            logger.error("[%s] %s: %s | Context: %s", request_id_var.get(""), type(exc).__name__, exc.message, exc.context)
        return error_response(exc.status_code, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return error_response(404, "API endpoint not found")
        return error_response(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("[%s] Unexpected error: %s", request_id_var.get(""), str(exc), exc_info=True)
        return error_response(500, "Internal server error")


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    app = FastAPI(
        title="SnapCap API",
        description=(
            "Social media backend: posts, stories, duets, comments, chat, "
            "notifications, search and AI captions, with a realtime gateway at /ws."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Register Middleware ───────────────────────────────────────────────
    # Middleware executes in REVERSE order of addition:
    # CORS → RequestID → Logging → RateLimit → GZip
    # CORS is outermost so 429s and other early replies still carry its headers
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    for module in (auth, users, posts, stories, comments, duets, chat, notifications, search, friends):
        app.include_router(module.router)
    app.include_router(media.router)
    app.include_router(health.router)
    app.include_router(gateway.router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "snapcap.main:app",
        host=settings.backend_host,
        port=settings.backend_port,
        ws_ping_interval=settings.ws_ping_interval,
        log_level=settings.log_level.lower(),
    )
