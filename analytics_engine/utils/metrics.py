"""
Prometheus Metrics Module

Tracking, aggregation and retention metrics exposed at /metrics.
"""

import time
from collections.abc import Callable

from prometheus_client import Counter, Gauge, Histogram, Info
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

# =============================================================================
# Application Info
# =============================================================================

APP_INFO = Info("analytics_app", "Analytics engine information")


def set_app_info(version: str, environment: str) -> None:
    """Set application info labels."""
    APP_INFO.info({"version": version, "environment": environment})


# =============================================================================
# HTTP Request Metrics
# =============================================================================

HTTP_REQUESTS_TOTAL = Counter(
    "analytics_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "analytics_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

# =============================================================================
# Tracking Metrics
# =============================================================================

EVENTS_TRACKED_TOTAL = Counter(
    "analytics_events_tracked_total",
    "Tracking calls by outcome",
    ["outcome"],  # recorded, duplicate, skipped, failed
)

VIEW_DEDUP_TOTAL = Counter(
    "analytics_view_dedup_total",
    "View records inserted vs. updated in place",
    ["result"],  # inserted, updated, conflict
)

METRIC_UPDATES_TOTAL = Counter(
    "analytics_metric_updates_total",
    "Engagement counter increments/decrements",
    ["metric", "direction"],
)

# =============================================================================
# Geolocation Metrics
# =============================================================================

GEOLOCATION_LOOKUPS_TOTAL = Counter(
    "analytics_geolocation_lookups_total",
    "Geolocation lookups by source",
    ["source"],  # private, cache, provider, unknown, timeout
)

# =============================================================================
# Aggregation & Retention Metrics
# =============================================================================

AGGREGATION_RUNS_TOTAL = Counter(
    "analytics_aggregation_runs_total",
    "Base aggregate rebuilds by scope",
    ["scope"],  # entity, type, recent
)

AGGREGATION_DURATION_SECONDS = Histogram(
    "analytics_aggregation_duration_seconds",
    "Base aggregate rebuild duration in seconds",
    ["scope"],
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0, 120.0),
)

RETENTION_DELETED_TOTAL = Counter(
    "analytics_retention_deleted_total",
    "Rows removed by the retention sweeper",
    ["kind"],  # views, analytics, periods, orphaned
)

# =============================================================================
# Cache Metrics
# =============================================================================

REDIS_CONNECTED = Gauge(
    "analytics_redis_connected",
    "Redis connection status (1=connected, 0=disconnected)",
    ["role"],
)

CACHE_HITS_TOTAL = Counter(
    "analytics_cache_hits_total",
    "Total cache hits",
    ["cache_type"],
)

CACHE_MISSES_TOTAL = Counter(
    "analytics_cache_misses_total",
    "Total cache misses",
    ["cache_type"],
)

HEALTH_CHECK_STATUS = Gauge(
    "analytics_health_check_status",
    "Health check status (1=healthy, 0=unhealthy)",
    ["service"],
)

# =============================================================================
# Prometheus Metrics Middleware
# =============================================================================


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Collects request count and duration per normalized endpoint."""

    EXCLUDED_PATHS = {"/metrics", "/health", "/favicon.ico"}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if path in self.EXCLUDED_PATHS:
            return await call_next(request)

        method = request.method
        endpoint = self._normalize_path(path)
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
            status_code = response.status_code
        except Exception:
            status_code = 500
            raise
        finally:
            duration = time.perf_counter() - start_time
            HTTP_REQUEST_DURATION_SECONDS.labels(method=method, endpoint=endpoint).observe(duration)
            HTTP_REQUESTS_TOTAL.labels(method=method, endpoint=endpoint, status_code=str(status_code)).inc()

        return response

    @staticmethod
    def _normalize_path(path: str) -> str:
        """
        Collapse entity segments so label cardinality stays bounded.

        Examples:
            /api/v1/analytics/post/123/summary -> /api/v1/analytics/{type}/{id}/summary
        """
        parts = path.split("/")
        if len(parts) > 5 and parts[1:4] == ["api", "v1", "analytics"] and parts[4] not in ("track", "metrics", "top"):
            parts[4] = "{type}"
            parts[5] = "{id}"
        return "/".join("{id}" if part.isdigit() else part for part in parts)


# =============================================================================
# Helper Functions
# =============================================================================


def record_cache_hit(cache_type: str = "default") -> None:
    """Record a cache hit."""
    CACHE_HITS_TOTAL.labels(cache_type=cache_type).inc()


def record_cache_miss(cache_type: str = "default") -> None:
    """Record a cache miss."""
    CACHE_MISSES_TOTAL.labels(cache_type=cache_type).inc()


def record_tracking_outcome(outcome: str) -> None:
    EVENTS_TRACKED_TOTAL.labels(outcome=outcome).inc()


def record_view_dedup(result: str) -> None:
    VIEW_DEDUP_TOTAL.labels(result=result).inc()


def record_metric_update(metric: str, direction: str) -> None:
    METRIC_UPDATES_TOTAL.labels(metric=metric, direction=direction).inc()


def record_geolocation_lookup(source: str) -> None:
    GEOLOCATION_LOOKUPS_TOTAL.labels(source=source).inc()


def record_retention_deleted(kind: str, count: int) -> None:
    if count:
        RETENTION_DELETED_TOTAL.labels(kind=kind).inc(count)


def observe_aggregation(scope: str, started_at: float) -> None:
    """Record one aggregation run that started at ``started_at`` (perf_counter)."""
    AGGREGATION_RUNS_TOTAL.labels(scope=scope).inc()
    AGGREGATION_DURATION_SECONDS.labels(scope=scope).observe(time.perf_counter() - started_at)


def update_health_status(service: str, healthy: bool) -> None:
    """Update health check status for a service."""
    HEALTH_CHECK_STATUS.labels(service=service).set(1 if healthy else 0)
