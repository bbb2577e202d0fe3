"""
SnapCap Backend: Application Package
=====================================

What: The `snapcap` import package (REST API, realtime gateway, client glue).
Who:  Imported by uvicorn (`snapcap.main:app`), Alembic and pytest.

Layout:

    ┌─────────────────────────────────────┐
    │   Routes + Realtime gateway (I/O)   │  ← HTTP / WebSocket concerns only
    ├─────────────────────────────────────┤
    │         Services (Business Logic)   │  ← Rules, authorization, fan-out
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘

    snapcap.client sits outside this stack: it is the consumer side
    (API wrapper and sync cache) used by frontends and integration scripts.
"""

__version__ = "1.0.0"
