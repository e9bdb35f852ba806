"""
Per-Actor Analytic Aggregator

Owns the per-(entity, actor) analytic rows: lazy creation and atomic
counter updates. Counter changes are single UPDATE statements with column
arithmetic so concurrent requests for the same actor never lose writes.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import case, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from analytics_engine.constants.metrics import COUNTER_FIELDS
from analytics_engine.exceptions import (
    InvalidMetricError,
    PersistenceConflictError,
    RecordLockedError,
    ResourceNotFoundError,
)
from analytics_engine.models.analytic import Analytic
from analytics_engine.trackable import Actor, EntityRef, RequestInfo
from analytics_engine.utils.dates import utcnow
from analytics_engine.utils.scoring import click_through_rate, engagement_score, reaction_count

logger = logging.getLogger(__name__)


class AnalyticAggregator:
    """Per-actor analytic records."""

    @staticmethod
    def _actor_clause(actor: Actor):
        if actor.user_id:
            return Analytic.user_id == actor.user_id
        return Analytic.visitor_token == actor.visitor_token

    @classmethod
    async def find(cls, db: AsyncSession, entity: EntityRef, actor: Actor) -> Optional[Analytic]:
        result = await db.execute(
            select(Analytic).where(
                Analytic.entity_type == entity.entity_type,
                Analytic.entity_id == entity.entity_id,
                cls._actor_clause(actor),
            )
        )
        return result.scalars().first()

    @classmethod
    async def get_or_create(
        cls,
        db: AsyncSession,
        entity: EntityRef,
        actor: Actor,
        action: Optional[str] = None,
        request: Optional[RequestInfo] = None,
        now: Optional[datetime] = None,
    ) -> Analytic:
        """
        Fetch the actor's analytic row for ``entity``, creating it with zero counters.

        Raises:
            PersistenceConflictError: the row could be neither inserted nor re-read
        """
        analytic = await cls.find(db, entity, actor)
        if analytic is not None:
            return analytic

        now = now or utcnow()
        analytic = Analytic(
            entity_type=entity.entity_type,
            entity_id=entity.entity_id,
            user_id=actor.user_id,
            visitor_token=actor.visitor_token,
            session_id=actor.session_id,
            ip_address=actor.ip_address,
            action_type=action,
            request_path=request.path if request else None,
            unique_viewers=1,
            created_by=actor.user_id,
            last_activity_at=now,
            created_at=now,
            updated_at=now,
        )
        db.add(analytic)
        try:
            await db.commit()
            await db.refresh(analytic)
            return analytic
        except IntegrityError:
            await db.rollback()
            logger.info("Analytic row for %s/%s created concurrently, re-reading", entity, actor.key)
            analytic = await cls.find(db, entity, actor)
            if analytic is None:
                raise PersistenceConflictError(
                    "Analytic row missing after unique conflict",
                    details={"entity": str(entity), "actor": actor.key},
                )
            return analytic

    @staticmethod
    async def apply_derived_metrics(db: AsyncSession, analytic: Analytic) -> Analytic:
        """Recompute click-through rate, trend score and reaction count of one row."""
        analytic.click_through_rate = click_through_rate(analytic)
        analytic.trend_score = engagement_score(analytic)
        analytic.reaction_counts = reaction_count(analytic)
        await db.commit()
        await db.refresh(analytic)
        return analytic

    @classmethod
    async def record_action(
        cls,
        db: AsyncSession,
        analytic_id: int,
        actor: Actor,
        action: str,
        request: RequestInfo,
        is_robot: bool = False,
        now: Optional[datetime] = None,
    ) -> Optional[Analytic]:
        """
        Count one tracked view against the actor's analytic row.

        Args:
            db: Database session
            analytic_id: Per-actor analytic row id
            actor: Who viewed
            action: Tracked action
            request: Request snapshot (its path is copied onto the row)
            is_robot: Classifier verdict for the user agent
            now: Activity timestamp (default: now)

        Returns:
            The refreshed row, or None if the row is locked or the update failed
        """
        now = now or utcnow()
        audience = Analytic.user_views if actor.is_authenticated else Analytic.public_views
        kind = Analytic.bot_views if is_robot else Analytic.human_views

        try:
            result = await db.execute(
                update(Analytic)
                .where(Analytic.id == analytic_id, Analytic.analytics_lock.is_(False))
                .values(
                    {
                        Analytic.views_count: Analytic.views_count + 1,
                        Analytic.unique_viewers: 1,
                        audience: audience + 1,
                        kind: kind + 1,
                        Analytic.ip_address: actor.ip_address,
                        Analytic.session_id: actor.session_id,
                        Analytic.action_type: action,
                        Analytic.request_path: request.path,
                        Analytic.last_activity_at: now,
                        Analytic.updated_at: now,
                        Analytic.updated_by: actor.user_id,
                    }
                )
                .execution_options(synchronize_session=False)
            )
            await db.commit()

            analytic = await db.get(Analytic, analytic_id, populate_existing=True)
            if analytic is None:
                logger.warning("Analytic %s disappeared before its view was counted", analytic_id)
                return None
            if result.rowcount == 0:
                logger.info("Analytic %s is locked, view not counted", analytic_id)
                return None
            return await cls.apply_derived_metrics(db, analytic)
        except Exception as e:
            await db.rollback()
            logger.error("Failed to record action for analytic %s: %s", analytic_id, e)
            return None

    @classmethod
    async def adjust_metric(
        cls,
        db: AsyncSession,
        analytic_id: int,
        metric: str,
        amount: int = 1,
        now: Optional[datetime] = None,
    ) -> Analytic:
        """
        Add ``amount`` (possibly negative) to one counter, never going below zero.

        Raises:
            InvalidMetricError: ``metric`` is not a counter column
            RecordLockedError: the row is locked
        """
        if metric not in COUNTER_FIELDS:
            raise InvalidMetricError(metric)

        now = now or utcnow()
        column = getattr(Analytic, metric)
        if amount >= 0:
            new_value = column + amount
        else:
            new_value = case((column + amount < 0, 0), else_=column + amount)

        result = await db.execute(
            update(Analytic)
            .where(Analytic.id == analytic_id, Analytic.analytics_lock.is_(False))
            .values({column: new_value, Analytic.last_activity_at: now, Analytic.updated_at: now})
            .execution_options(synchronize_session=False)
        )
        await db.commit()

        analytic = await db.get(Analytic, analytic_id, populate_existing=True)
        if analytic is None:
            raise ResourceNotFoundError("Analytic", analytic_id)
        if result.rowcount == 0:
            raise RecordLockedError(analytic_id)
        return await cls.apply_derived_metrics(db, analytic)


analytic_aggregator = AnalyticAggregator()
