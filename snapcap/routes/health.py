"""
SnapCap Backend: Health Check Route
=====================================

What:  Liveness and dependency probe for load balancers and the client's
       connection banner.
How:   Runs SELECT 1 against the database, reads the caption circuit
       breaker and, while it is closed, asks the caption model whether it is
       reachable (a model listing, no generation quota).

Status levels:
    healthy:   database connected, caption model configured and reachable (200)
    degraded:  database connected, captions served offline (200)
    unhealthy: database unreachable (503)
"""

import logging
import time

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text

from snapcap import __version__
from snapcap.config import settings
from snapcap.database import engine, utcnow
from snapcap.schemas.common import HealthResponse
from snapcap.services.caption_service import caption_service
from snapcap.services.gemini_service import CircuitBreaker

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


async def _gemini_status() -> str:
    if not caption_service.model.configured:
        return "fallback"
    if caption_service.circuit_breaker.state == CircuitBreaker.OPEN:
        return "circuit_open"
    try:
        available = await caption_service.model.health_check()
    except Exception as e:
        logger.warning("Health check: caption model unreachable: %s", str(e))
        available = False
    return "configured" if available else "unavailable"


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    description="Reports database connectivity, caption model state and uptime.",
)
async def health_check():
    db_status = "connected"
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        db_status = "disconnected"
        logger.warning("Health check: database unreachable: %s", str(e))

    gemini_status = await _gemini_status()
    if db_status != "connected":
        overall = "unhealthy"
    elif gemini_status != "configured":
        overall = "degraded"
    else:
        overall = "healthy"

    body = HealthResponse(
        success=db_status == "connected",
        message="SnapCap API is running",
        status=overall,
        environment=settings.environment,
        version=__version__,
        database=db_status,
        gemini=gemini_status,
        timestamp=utcnow(),
        uptime_seconds=round(time.time() - _start_time, 2),
    )
    if db_status != "connected":
        return JSONResponse(status_code=503, content=body.model_dump(mode="json", by_alias=True))
    return body
