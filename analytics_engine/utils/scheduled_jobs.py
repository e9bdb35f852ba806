"""
Scheduled maintenance jobs

Recurring base-row aggregation and retention cleanup. Each run opens its
own DB session; a failed run is logged and retried on the next interval.
"""

import logging
from datetime import timedelta

from apscheduler.triggers.interval import IntervalTrigger

from analytics_engine.database import AsyncSessionLocal
from analytics_engine.utils.cache import CacheManager, get_cache_manager

logger = logging.getLogger(__name__)


async def aggregate_recent_activity(window_hours: int = 24) -> int:
    """Rebuild base rows of recently active entities and drop cached summaries. Returns 0 on failure."""
    from analytics_engine.services.aggregation_service import aggregate_builder

    async with AsyncSessionLocal() as db:
        try:
            rebuilt = await aggregate_builder.rebuild_recent(db, window=timedelta(hours=window_hours))
        except Exception as exc:
            logger.warning("scheduled_jobs: aggregation failed: %s", exc)
            return 0

    cache = await get_cache_manager()
    await cache.delete_pattern(f"{CacheManager.PREFIX_SUMMARY}*")
    return rebuilt


async def enforce_retention() -> dict[str, int]:
    """Apply configured retention and drop orphaned analytics. Returns {} on failure."""
    from analytics_engine.entity_registry import entity_registry
    from analytics_engine.services.retention_service import retention_sweeper

    async with AsyncSessionLocal() as db:
        try:
            deleted = await retention_sweeper.purge_expired(db)
            if entity_registry.entity_types:
                deleted["orphaned"] = await retention_sweeper.purge_orphaned(db, entity_registry)
            return deleted
        except Exception as exc:
            logger.warning("scheduled_jobs: retention failed: %s", exc)
            return {}


def install_aggregation_job(scheduler, interval_minutes: int = 60, window_hours: int = 24) -> None:
    """
    Register the recent-activity aggregation job with the shared APScheduler instance.

    Args:
        scheduler: The application's AsyncIOScheduler (from analytics_engine.scheduler).
        interval_minutes: How often to run.
        window_hours: Entities active within this window are rebuilt.
    """
    scheduler.add_job(
        aggregate_recent_activity,
        trigger=IntervalTrigger(minutes=interval_minutes),
        args=[window_hours],
        id="analytics_aggregation",
        replace_existing=True,
        max_instances=1,
    )
    logger.info("scheduled_jobs: aggregation installed (interval=%dm, window=%dh)", interval_minutes, window_hours)


def install_retention_policy(scheduler, interval_hours: int = 24) -> None:
    scheduler.add_job(
        enforce_retention,
        trigger=IntervalTrigger(hours=interval_hours),
        id="analytics_retention",
        replace_existing=True,
        max_instances=1,
    )
    logger.info("scheduled_jobs: retention installed (interval=%dh)", interval_hours)
