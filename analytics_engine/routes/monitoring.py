"""
Monitoring Routes

Provides health check endpoints and Prometheus metrics for observability.
"""

import time
from typing import Any

from fastapi import APIRouter, Depends, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from analytics_engine.config import settings
from analytics_engine.database import get_db
from analytics_engine.utils.cache import get_cache_manager
from analytics_engine.utils.dates import utcnow
from analytics_engine.utils.metrics import update_health_status

router = APIRouter(tags=["Monitoring"])

# Application start time for uptime calculation
APP_START_TIME = time.time()


class HealthStatus(BaseModel):
    """Health check response model."""

    status: str
    timestamp: str
    version: str
    environment: str
    uptime_seconds: float
    checks: dict[str, dict[str, Any]]


@router.get("/health", response_model=HealthStatus)
async def health_check(db: AsyncSession = Depends(get_db)) -> HealthStatus:
    """
    Health check endpoint.

    Reports database and Redis connectivity. Redis being unavailable only
    degrades caching, so the service stays healthy without it.
    """
    checks = {
        "database": await _check_database(db),
        "redis": await _check_redis(),
    }

    healthy = checks["database"]["status"] == "healthy"
    return HealthStatus(
        status="healthy" if healthy else "unhealthy",
        timestamp=utcnow().isoformat(),
        version=settings.app_version,
        environment=settings.environment,
        uptime_seconds=round(time.time() - APP_START_TIME, 2),
        checks=checks,
    )


@router.get("/metrics")
async def prometheus_metrics() -> Response:
    """
    Prometheus metrics endpoint.

    Returns metrics in Prometheus text format for scraping.
    """
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )


async def _check_database(db: AsyncSession) -> dict[str, Any]:
    """Check database connectivity and update health metrics."""
    try:
        start = time.perf_counter()
        await db.execute(text("SELECT 1"))
        latency_ms = (time.perf_counter() - start) * 1000
        update_health_status("database", healthy=True)
        return {"status": "healthy", "latency_ms": round(latency_ms, 2)}
    except Exception as e:
        update_health_status("database", healthy=False)
        return {"status": "unhealthy", "error": str(e)}


async def _check_redis() -> dict[str, Any]:
    """Check Redis connectivity; a disabled cache is reported, not failed."""
    cm = await get_cache_manager()
    if not cm.enabled:
        update_health_status("redis", healthy=False)
        return {"status": "disabled", "message": "Caching disabled"}

    update_health_status("redis", healthy=True)
    return {"status": "healthy"}
