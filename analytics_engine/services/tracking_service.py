"""
Tracking Service

Entry points for recording events against trackable entities. A view goes
through classification, per-actor row creation, view deduplication, the
atomic counter update and the daily/weekly/monthly/yearly views rollup of
the actor's row. Nothing here raises: invalid input and persistence
failures are logged and reported as ``None``.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from analytics_engine.config import settings
from analytics_engine.constants.metrics import ENGAGEMENT_COUNTERS, resolve_metric
from analytics_engine.events import (
    HOOK_ENTITY_DELETED,
    HOOK_ENTITY_VIEWED,
    METRIC_HOOKS,
    DomainEvent,
    DomainEventBus,
)
from analytics_engine.exceptions import InvalidMetricError, RecordLockedError, ValidationError
from analytics_engine.models.analytic import Analytic
from analytics_engine.services.aggregator_service import AnalyticAggregator, analytic_aggregator
from analytics_engine.services.classifier import EventClassifier, event_classifier
from analytics_engine.services.period_service import PeriodRollupEngine, period_engine
from analytics_engine.services.retention_service import RetentionSweeper, retention_sweeper
from analytics_engine.services.view_service import ViewDeduplicator, view_deduplicator
from analytics_engine.trackable import Actor, EntityRef, RequestInfo, Trackable
from analytics_engine.utils.dates import utcnow
from analytics_engine.utils.dedup import RequestDeduplicationContext, request_signature
from analytics_engine.utils.metrics import record_metric_update, record_tracking_outcome

logger = logging.getLogger(__name__)


class TrackingService:
    def __init__(
        self,
        classifier: EventClassifier = event_classifier,
        aggregator: AnalyticAggregator = analytic_aggregator,
        views: ViewDeduplicator = view_deduplicator,
        periods: PeriodRollupEngine = period_engine,
        sweeper: RetentionSweeper = retention_sweeper,
    ):
        self.classifier = classifier
        self.aggregator = aggregator
        self.views = views
        self.periods = periods
        self.sweeper = sweeper

    async def track(
        self,
        db: AsyncSession,
        entity: Trackable | EntityRef,
        action: str,
        request: RequestInfo,
        actor: Actor,
        context: Optional[RequestDeduplicationContext] = None,
        now: Optional[datetime] = None,
    ) -> Optional[Analytic]:
        """
        Record one view of ``entity`` by ``actor``.

        Args:
            db: Database session
            entity: Trackable object or entity reference
            action: Tracked action name (must be in the configured tracked actions)
            request: Request snapshot
            actor: Viewer identity
            context: Per-request duplicate suppression; a repeated signature is skipped
            now: Event timestamp (default: now)

        Returns:
            The actor's updated analytic row, or None if the event was skipped, the row
            is locked, or tracking failed
        """
        if not settings.analytics_enabled:
            return None

        try:
            entity = EntityRef.of(entity)
        except ValidationError as e:
            logger.warning("Skipping tracking: %s", e.message)
            record_tracking_outcome("skipped")
            return None

        if not self.classifier.is_tracked_action(action):
            logger.debug("Action %s is not tracked", action)
            record_tracking_outcome("skipped")
            return None

        if context is not None and not context.check_and_mark(request_signature(entity, action, request, actor)):
            logger.debug("Duplicate %s of %s within request ignored", action, entity)
            record_tracking_outcome("duplicate")
            return None

        event = await self.classifier.classify(request, actor)
        if event is None:
            record_tracking_outcome("skipped")
            return None

        now = now or utcnow()
        try:
            analytic = await self.aggregator.get_or_create(db, entity, actor, action, request, now=now)
            analytic_id = analytic.id
            if analytic.is_locked:
                logger.info("Analytics of %s by %s are locked, view ignored", entity, actor.key)
                record_tracking_outcome("locked")
                return None

            await self.views.record_view(
                db,
                entity,
                actor,
                action,
                request,
                event,
                analytic_id=analytic_id,
                now=now,
                status=analytic.analytics_status,
            )

            analytic = await self.aggregator.record_action(
                db, analytic_id, actor, action, request, is_robot=event.is_robot, now=now
            )
            if analytic is None:
                record_tracking_outcome("failed")
                return None

            await self.periods.rollup(db, analytic_id, "views_count", analytic.views_count, as_of=now)
            analytic = await db.get(Analytic, analytic_id)
        except Exception as e:
            await db.rollback()
            logger.error("Tracking failed for %s by %s: %s", entity, actor.key, e)
            record_tracking_outcome("failed")
            return None

        record_tracking_outcome("recorded")
        return analytic

    async def record_metric(
        self,
        db: AsyncSession,
        entity: Trackable | EntityRef,
        actor: Actor,
        metric: str,
        amount: int = 1,
        now: Optional[datetime] = None,
    ) -> Optional[Analytic]:
        """
        Add ``amount`` to an engagement counter (like, share, click, ...) of the actor's row.

        Negative amounts decrement; counters never go below zero. The counter
        is then rolled into periods for the actor's row.

        Returns:
            The updated analytic row, or None on invalid input, a locked row or failure
        """
        if not settings.analytics_enabled:
            return None

        column = resolve_metric(metric)
        try:
            entity = EntityRef.of(entity)
            if column is None or column not in ENGAGEMENT_COUNTERS:
                raise InvalidMetricError(metric)
        except ValidationError as e:
            logger.warning("Skipping metric update: %s", e.message)
            record_tracking_outcome("skipped")
            return None

        now = now or utcnow()
        try:
            analytic = await self.aggregator.get_or_create(db, entity, actor, column, now=now)
            analytic_id = analytic.id
            analytic = await self.aggregator.adjust_metric(db, analytic_id, column, amount, now=now)
            await self.periods.rollup(db, analytic_id, column, getattr(analytic, column), as_of=now)
            analytic = await db.get(Analytic, analytic_id)
        except RecordLockedError:
            logger.info("Analytics of %s by %s are locked, %s unchanged", entity, actor.key, column)
            record_tracking_outcome("locked")
            return None
        except Exception as e:
            await db.rollback()
            logger.error("Metric %s update failed for %s by %s: %s", column, entity, actor.key, e)
            record_tracking_outcome("failed")
            return None

        record_metric_update(column, "increment" if amount >= 0 else "decrement")
        return analytic

    async def remove_metric(
        self,
        db: AsyncSession,
        entity: Trackable | EntityRef,
        actor: Actor,
        metric: str,
        amount: int = 1,
        now: Optional[datetime] = None,
    ) -> Optional[Analytic]:
        """Undo ``amount`` of an engagement counter (unlike, unfollow, ...)."""
        return await self.record_metric(db, entity, actor, metric, -abs(amount), now=now)

    async def handle_event(self, hook_name: str, event: DomainEvent) -> Any:
        """Domain event subscriber translating hooks into tracking calls."""
        if hook_name == HOOK_ENTITY_VIEWED:
            if event.actor is None:
                return None
            return await self.track(event.db, event.entity, event.action, event.request or RequestInfo(), event.actor)

        if hook_name == HOOK_ENTITY_DELETED:
            return await self.sweeper.purge_entity(event.db, event.entity)

        if hook_name in METRIC_HOOKS:
            if event.actor is None:
                return None
            column, direction = METRIC_HOOKS[hook_name]
            return await self.record_metric(event.db, event.entity, event.actor, column, direction * abs(event.amount))

        return None

    def register_event_handlers(self, bus: DomainEventBus) -> None:
        """Subscribe this service to every tracking-related hook on ``bus``."""
        bus.subscribe(HOOK_ENTITY_VIEWED, self.handle_event)
        bus.subscribe(HOOK_ENTITY_DELETED, self.handle_event)
        for hook_name in METRIC_HOOKS:
            bus.subscribe(hook_name, self.handle_event)


tracking_service = TrackingService()
