"""
Analytics Routes

Read endpoints for one entity, plus per-type rankings.
"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from analytics_engine.constants.metrics import Granularity
from analytics_engine.database import get_db
from analytics_engine.services.analytics_service import analytics_service
from analytics_engine.trackable import EntityRef

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Analytics"])

MAX_DAYS = 365


def entity_ref(entity_type: str, entity_id: str) -> EntityRef:
    """Path dependency; an invalid reference is rendered as a 422 by the error handlers."""
    return EntityRef(entity_type, entity_id)


@router.get("/top/{entity_type}")
async def get_top_entities(
    entity_type: str,
    order_by: str = Query("trend_score", pattern="^(trend_score|views)$"),
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """
    Get the highest ranked entities of one type.

    **Returns**: Entities ordered by trend score (default) or views
    """
    return await analytics_service.get_top_entities(db, entity_type, order_by=order_by, limit=limit)


@router.get("/{entity_type}/{entity_id}/summary")
async def get_summary(entity: EntityRef = Depends(entity_ref), db: AsyncSession = Depends(get_db)):
    """
    Get the aggregated totals of an entity.

    **Returns**:
    - View totals (total, unique, users, public, bots, humans)
    - Engagement counters and click-through rate
    - Trend score, contributors and last activity
    """
    return await analytics_service.get_summary(db, entity)


@router.get("/{entity_type}/{entity_id}/realtime")
async def get_realtime_totals(entity: EntityRef = Depends(entity_ref), db: AsyncSession = Depends(get_db)):
    """Totals computed live from the per-viewer rows."""
    return await analytics_service.get_realtime_totals(db, entity)


@router.get("/{entity_type}/{entity_id}/views")
async def get_view_stats(
    entity: EntityRef = Depends(entity_ref),
    days: int = Query(30, ge=1, le=MAX_DAYS),
    db: AsyncSession = Depends(get_db),
):
    """
    Get view statistics for an entity.

    **Parameters**:
    - `days`: Number of days to analyze (default: 30, max: 365)
    """
    return await analytics_service.get_view_stats(db, entity, days=days)


@router.get("/{entity_type}/{entity_id}/unique-viewers")
async def get_unique_viewer_stats(
    entity: EntityRef = Depends(entity_ref),
    days: int = Query(30, ge=1, le=MAX_DAYS),
    db: AsyncSession = Depends(get_db),
):
    return await analytics_service.get_unique_viewer_stats(db, entity, days=days)


@router.get("/{entity_type}/{entity_id}/browsers")
async def get_browser_analytics(
    entity: EntityRef = Depends(entity_ref),
    days: int = Query(30, ge=1, le=MAX_DAYS),
    db: AsyncSession = Depends(get_db),
):
    return await analytics_service.get_browser_analytics(db, entity, days=days)


@router.get("/{entity_type}/{entity_id}/devices")
async def get_device_analytics(
    entity: EntityRef = Depends(entity_ref),
    days: int = Query(30, ge=1, le=MAX_DAYS),
    db: AsyncSession = Depends(get_db),
):
    return await analytics_service.get_device_analytics(db, entity, days=days)


@router.get("/{entity_type}/{entity_id}/bots")
async def get_bot_analytics(
    entity: EntityRef = Depends(entity_ref),
    days: int = Query(30, ge=1, le=MAX_DAYS),
    db: AsyncSession = Depends(get_db),
):
    return await analytics_service.get_bot_analytics(db, entity, days=days)


@router.get("/{entity_type}/{entity_id}/geolocation")
async def get_geolocation_analytics(
    entity: EntityRef = Depends(entity_ref),
    days: int = Query(30, ge=1, le=MAX_DAYS),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    """Views by country and city, excluding views without a known location."""
    return await analytics_service.get_geolocation_analytics(db, entity, days=days, limit=limit)


@router.get("/{entity_type}/{entity_id}/periods")
async def get_period_series(
    entity: EntityRef = Depends(entity_ref),
    metric: str = "views_count",
    granularity: Granularity = Granularity.DAILY,
    start: Optional[date] = None,
    end: Optional[date] = None,
    db: AsyncSession = Depends(get_db),
):
    """
    Get the period rollups of an entity.

    **Parameters**:
    - `metric`: views_count, likes_count, shares_count, clicks_count, impressions_count or unique_viewers
    - `granularity`: daily, weekly, monthly or yearly
    - `start` / `end`: Bucket start date range
    """
    return await analytics_service.get_period_series(db, entity, metric, granularity, start=start, end=end)


@router.get("/{entity_type}/{entity_id}/timeline")
async def get_time_based_analytics(
    entity: EntityRef = Depends(entity_ref),
    days: int = Query(30, ge=1, le=MAX_DAYS),
    group_by: str = Query("day", pattern="^(day|week|month)$"),
    db: AsyncSession = Depends(get_db),
):
    return await analytics_service.get_time_based_analytics(db, entity, days=days, group_by=group_by)


@router.get("/{entity_type}/{entity_id}/engagement")
async def get_engagement_scores(entity: EntityRef = Depends(entity_ref), db: AsyncSession = Depends(get_db)):
    """Engagement score, engagement rate, popularity score and click-through rate."""
    return await analytics_service.get_engagement_scores(db, entity)
