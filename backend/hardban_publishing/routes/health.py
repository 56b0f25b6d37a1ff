"""
HardbanRecords Publishing API - Health Check Route
===================================================

What:  Liveness and dependency status for probes and monitoring.
How:   SELECT 1 against the database; PING against Redis unless the counter
       store is memory-only or its circuit breaker is open.

Status levels:
    - healthy:   database and (when configured) Redis reachable
    - degraded:  Redis unreachable; rate limiting runs on the memory fallback
    - unhealthy: database unreachable
"""

import logging
import time

from fastapi import APIRouter, Request

from hardban_publishing import __version__
from hardban_publishing.database import ping_database
from hardban_publishing.schemas.common import HealthResponse
from hardban_publishing.services.rate_limit_store import RedisRateLimitStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check(request: Request) -> HealthResponse:
    overall = "healthy"

    if await ping_database():
        db_status = "connected"
    else:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable")

    store = request.app.state.rate_limit_store
    if not isinstance(store, RedisRateLimitStore):
        redis_status = "disabled"
    elif store.degraded:
        redis_status = "circuit_open"
    elif await store.ping():
        redis_status = "connected"
    else:
        redis_status = "disconnected"

    if redis_status in ("circuit_open", "disconnected") and overall == "healthy":
        overall = "degraded"

    return HealthResponse(
        status=overall,
        version=__version__,
        environment=request.app.state.settings.environment,
        database=db_status,
        redis=redis_status,
        rate_limit_backend=store.backend,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
