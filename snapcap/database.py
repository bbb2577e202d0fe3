"""
SnapCap Backend: Database Session Management
==============================================

What:  Async SQLAlchemy engine, session factory, declarative base, and the
       request-scoped session dependency.
How:   One engine per process; every request (or gateway event) gets its own
       AsyncSession which commits on success and rolls back on error.
Who:   Route handlers via Depends(get_db_session); the realtime gateway via
       `async_session_factory()` directly.

Connection Pooling Strategy:
    PostgreSQL (asyncpg): pool_size + max_overflow from settings,
    pre-ping and hourly recycle.
    SQLite (aiosqlite, tests and local demos): NullPool, because SQLite
    connections are cheap and pooled ones cannot be shared across the event
    loops pytest and Starlette's TestClient create.
"""

from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Dict, Optional

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from snapcap.config import settings


def _engine_options(url: str) -> Dict[str, Any]:
    """Pool arguments for the configured backend."""
    options: Dict[str, Any] = {"echo": settings.log_level == "DEBUG"}
    if url.startswith("sqlite"):
        options["poolclass"] = NullPool
        return options
    options.update(
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=settings.db_pool_pre_ping,
        pool_recycle=3600,
    )
    return options


# ── Engine Configuration ──────────────────────────────────────────────────
engine = create_async_engine(settings.database_url, **_engine_options(settings.database_url))

# ── Session Factory ───────────────────────────────────────────────────────
# expire_on_commit=False: objects stay readable after commit (responses are
# serialized after the service has committed)
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ── Base Model ────────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    """Base class for all SnapCap ORM models (shared metadata for Alembic)."""
    pass


# ── Time Helpers ──────────────────────────────────────────────────────────
def utcnow() -> datetime:
    """Timezone-aware UTC now; every timestamp column is written with this."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a loaded timestamp to aware UTC.

    SQLite returns naive datetimes even for timezone=True columns; PostgreSQL
    returns aware ones. Python-side comparisons go through this helper.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ── Session Dependency ────────────────────────────────────────────────────
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    How it works:
        1. Creates a new session from the factory
        2. Yields it to the route handler
        3. On success: commits the transaction
        4. On error: rolls back and re-raises for the global handlers
        5. Always: closes the session

    Example usage in a route:
        @router.get("/posts/{post_id}")
        async def get_post(post_id: UUID, db: AsyncSession = Depends(get_db_session)):
            return await post_service.get_post(db, post_id)
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── Lifecycle Helpers ─────────────────────────────────────────────────────
async def dispose_engine() -> None:
    """Close every pooled connection (application shutdown)."""
    await engine.dispose()
