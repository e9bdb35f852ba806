"""
Tracking Routes

Ingestion endpoints called by the application server on behalf of its
visitors. Both endpoints always answer 200; a skipped or failed event is
reported with ``tracked``/``updated`` set to false.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from analytics_engine.constants.metrics import resolve_metric
from analytics_engine.database import get_db
from analytics_engine.exceptions import ValidationError
from analytics_engine.identity import get_optional_actor, request_info_from
from analytics_engine.schemas.tracking import MetricRequest, MetricResponse, TrackRequest, TrackResponse
from analytics_engine.services.tracking_service import tracking_service
from analytics_engine.trackable import Actor, EntityRef
from analytics_engine.utils.dedup import RequestDeduplicationContext, get_dedup_context

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Tracking"])


@router.post("/track", response_model=TrackResponse)
async def track_event(
    payload: TrackRequest,
    request: Request,
    actor: Optional[Actor] = Depends(get_optional_actor),
    context: RequestDeduplicationContext = Depends(get_dedup_context),
    db: AsyncSession = Depends(get_db),
):
    """
    Record a view of an entity.

    The viewer is identified by the `X-User-Id` header, or by the
    `X-Visitor-Token` header / `visitor_token` cookie for anonymous visitors.

    **Returns**: The viewer's counters for the entity when the view was recorded.
    """
    response = TrackResponse(tracked=False, entity_type=payload.entity_type, entity_id=payload.entity_id)
    if actor is None:
        return response

    try:
        entity = EntityRef(payload.entity_type, payload.entity_id)
    except ValidationError:
        return response

    info = request_info_from(request, path=payload.path, url=payload.url, referer=payload.referer)
    analytic = await tracking_service.track(db, entity, payload.action, info, actor, context=context)
    if analytic is None:
        return response

    return TrackResponse(
        tracked=True,
        entity_type=analytic.entity_type,
        entity_id=analytic.entity_id,
        views_count=analytic.views_count,
        unique_viewers=analytic.unique_viewers,
        last_activity_at=analytic.last_activity_at,
    )


@router.post("/metrics", response_model=MetricResponse)
async def track_metric(
    payload: MetricRequest,
    actor: Optional[Actor] = Depends(get_optional_actor),
    db: AsyncSession = Depends(get_db),
):
    """
    Increment (or, with `remove`, decrement) an engagement counter.

    **Accepts**: aliases such as `like`, `share`, `click`, `follow`, `bookmark`
    or the counter column name.
    """
    response = MetricResponse(
        updated=False, entity_type=payload.entity_type, entity_id=payload.entity_id, metric=payload.metric
    )
    if actor is None:
        return response

    try:
        entity = EntityRef(payload.entity_type, payload.entity_id)
    except ValidationError:
        return response

    if payload.remove:
        analytic = await tracking_service.remove_metric(db, entity, actor, payload.metric, payload.amount)
    else:
        analytic = await tracking_service.record_metric(db, entity, actor, payload.metric, payload.amount)
    if analytic is None:
        return response

    column = resolve_metric(payload.metric)
    response.updated = True
    response.metric = column
    response.value = getattr(analytic, column)
    return response
