"""
Admin Routes

Maintenance operations: base-row rebuilds, retention cleanup, orphan
cleanup, period backfill, growth rankings and moderation of single
analytic rows. Every endpoint requires the configured admin API key in the
``X-Admin-Key`` header; ``X-Admin-User`` names who made a moderation change.
"""

import logging
import secrets
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from analytics_engine.config import settings
from analytics_engine.constants.metrics import DECLINING_GROWTH_THRESHOLD, TRENDING_GROWTH_THRESHOLD, Granularity
from analytics_engine.database import get_db
from analytics_engine.entity_registry import entity_registry
from analytics_engine.exceptions import AuthorizationError, ResourceNotFoundError
from analytics_engine.models.analytic import Analytic
from analytics_engine.schemas.admin import (
    AnalyticRecordOut,
    BackfillRequest,
    PeriodOut,
    RebuildResponse,
    RetentionRequest,
    RetentionResponse,
)
from analytics_engine.services.aggregation_service import aggregate_builder
from analytics_engine.services.analytics_service import analytics_service
from analytics_engine.services.moderation_service import moderation_service
from analytics_engine.services.period_service import period_engine
from analytics_engine.services.retention_service import retention_sweeper
from analytics_engine.trackable import EntityRef
from analytics_engine.utils.cache import CacheManager, get_cache_manager

logger = logging.getLogger(__name__)

ADMIN_KEY_HEADER = "X-Admin-Key"
ADMIN_USER_HEADER = "X-Admin-User"


async def require_admin_key(request: Request) -> None:
    """Reject the request unless it carries the configured admin key."""
    provided = request.headers.get(ADMIN_KEY_HEADER)
    if not settings.admin_api_key or not provided:
        raise AuthorizationError("Admin API key required")
    if not secrets.compare_digest(provided, settings.admin_api_key):
        raise AuthorizationError("Invalid admin API key")


def admin_user(request: Request) -> Optional[str]:
    return request.headers.get(ADMIN_USER_HEADER)


router = APIRouter(tags=["Admin"], dependencies=[Depends(require_admin_key)])


@router.post("/rebuild/{entity_type}/{entity_id}")
async def rebuild_entity(
    entity_type: str,
    entity_id: str,
    db: AsyncSession = Depends(get_db),
    cache: CacheManager = Depends(get_cache_manager),
):
    """
    Recompute the base row of one entity from its per-viewer rows.

    **Returns**: The fresh summary of the entity
    """
    entity = EntityRef(entity_type, entity_id)
    base = await aggregate_builder.rebuild_base(db, entity.entity_type, entity.entity_id)
    if base is None:
        raise ResourceNotFoundError("Analytics", str(entity))

    await cache.invalidate_summary(entity.entity_type, entity.entity_id)
    return await analytics_service.get_summary(db, entity)


@router.post("/rebuild/{entity_type}", response_model=RebuildResponse)
async def rebuild_entity_type(
    entity_type: str,
    batch_size: Optional[int] = Query(None, ge=1, le=10000),
    db: AsyncSession = Depends(get_db),
    cache: CacheManager = Depends(get_cache_manager),
):
    """Recompute the base rows of every entity of one type, in batches."""
    rebuilt = await aggregate_builder.rebuild_all_for_type(db, entity_type, batch_size=batch_size)
    await cache.invalidate_summary(entity_type)
    return RebuildResponse(scope=entity_type, rebuilt=rebuilt)


@router.post("/rebuild-recent", response_model=RebuildResponse)
async def rebuild_recent(
    hours: int = Query(24, ge=1, le=24 * 30),
    db: AsyncSession = Depends(get_db),
    cache: CacheManager = Depends(get_cache_manager),
):
    """Recompute the base rows of entities active within the last `hours`."""
    rebuilt = await aggregate_builder.rebuild_recent(db, window=timedelta(hours=hours))
    await cache.delete_pattern(f"{CacheManager.PREFIX_SUMMARY}*")
    return RebuildResponse(scope=f"recent:{hours}h", rebuilt=rebuilt)


@router.post("/retention", response_model=RetentionResponse)
async def purge_expired(payload: Optional[RetentionRequest] = None, db: AsyncSession = Depends(get_db)):
    """
    Delete views, periods and analytics older than their retention period.

    **Parameters**: Optional per-kind day overrides; omitted kinds use the configured retention.
    """
    overrides = payload.overrides() if payload else {}
    deleted = await retention_sweeper.purge_expired(db, days=overrides)
    return RetentionResponse(deleted=deleted)


@router.post("/orphans", response_model=RetentionResponse)
async def purge_orphaned(db: AsyncSession = Depends(get_db)):
    """Delete analytics of entities that no longer exist."""
    deleted = await retention_sweeper.purge_orphaned(db, entity_registry)
    return RetentionResponse(deleted={"orphaned": deleted})


@router.post("/backfill", response_model=list[PeriodOut])
async def backfill_periods(payload: BackfillRequest, db: AsyncSession = Depends(get_db)):
    """
    Create missing period buckets for an entity's base row.

    Existing buckets are left untouched.
    """
    entity = EntityRef(payload.entity_type, payload.entity_id)
    base = await analytics_service.get_base(db, entity)
    if base is None:
        raise ResourceNotFoundError("Analytics", str(entity))

    return await period_engine.backfill(
        db, base.id, payload.metric, payload.granularity, since=payload.since, until=payload.until
    )


@router.get("/trending", response_model=list[PeriodOut])
async def get_trending(
    entity_type: Optional[str] = None,
    metric: str = "views_count",
    granularity: Granularity = Granularity.DAILY,
    min_growth: float = TRENDING_GROWTH_THRESHOLD,
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """Current-period buckets growing at least `min_growth` percent."""
    return await period_engine.trending(
        db, entity_type=entity_type, metric=metric, granularity=granularity, min_growth=min_growth, limit=limit
    )


@router.get("/declining", response_model=list[PeriodOut])
async def get_declining(
    entity_type: Optional[str] = None,
    metric: str = "views_count",
    granularity: Granularity = Granularity.DAILY,
    max_growth: float = DECLINING_GROWTH_THRESHOLD,
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """Current-period buckets shrinking to `max_growth` percent or below."""
    return await period_engine.declining(
        db, entity_type=entity_type, metric=metric, granularity=granularity, max_growth=max_growth, limit=limit
    )


async def _moderated(analytic: Analytic, cache: CacheManager) -> Analytic:
    await cache.invalidate_summary(analytic.entity_type, analytic.entity_id)
    return analytic


@router.post("/records/{analytic_id}/approve", response_model=AnalyticRecordOut)
async def approve_record(
    analytic_id: int,
    by: Optional[str] = Depends(admin_user),
    db: AsyncSession = Depends(get_db),
    cache: CacheManager = Depends(get_cache_manager),
):
    """Mark an analytic row approved."""
    return await _moderated(await moderation_service.mark_approved(db, analytic_id, by), cache)


@router.post("/records/{analytic_id}/reject", response_model=AnalyticRecordOut)
async def reject_record(
    analytic_id: int,
    by: Optional[str] = Depends(admin_user),
    db: AsyncSession = Depends(get_db),
    cache: CacheManager = Depends(get_cache_manager),
):
    """
    Mark an analytic row rejected.

    Its views drop out of breakdowns immediately; the entity's totals drop
    it on the next rebuild.
    """
    return await _moderated(await moderation_service.mark_rejected(db, analytic_id, by), cache)


@router.post("/records/{analytic_id}/restore", response_model=AnalyticRecordOut)
async def restore_record(
    analytic_id: int,
    by: Optional[str] = Depends(admin_user),
    db: AsyncSession = Depends(get_db),
    cache: CacheManager = Depends(get_cache_manager),
):
    """Return a rejected or approved analytic row to active."""
    return await _moderated(await moderation_service.mark_restored(db, analytic_id, by), cache)


@router.post("/records/{analytic_id}/lock", response_model=AnalyticRecordOut)
async def lock_record(
    analytic_id: int,
    by: Optional[str] = Depends(admin_user),
    db: AsyncSession = Depends(get_db),
    cache: CacheManager = Depends(get_cache_manager),
):
    """Freeze the counters, views and periods of an analytic row."""
    return await _moderated(await moderation_service.set_lock(db, analytic_id, True, by), cache)


@router.post("/records/{analytic_id}/unlock", response_model=AnalyticRecordOut)
async def unlock_record(
    analytic_id: int,
    by: Optional[str] = Depends(admin_user),
    db: AsyncSession = Depends(get_db),
    cache: CacheManager = Depends(get_cache_manager),
):
    return await _moderated(await moderation_service.set_lock(db, analytic_id, False, by), cache)


@router.post("/records/{analytic_id}/reset", response_model=AnalyticRecordOut)
async def reset_record(
    analytic_id: int,
    by: Optional[str] = Depends(admin_user),
    db: AsyncSession = Depends(get_db),
    cache: CacheManager = Depends(get_cache_manager),
):
    """
    Zero the counters of an analytic row.

    **Errors**: 409 when the row is locked
    """
    return await _moderated(await moderation_service.reset_counters(db, analytic_id, by), cache)
