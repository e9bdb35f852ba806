"""
Base Aggregate Builder

Recomputes the per-entity base analytic row from the per-actor rows and
rolls the headline metrics into periods. Rebuilds read a snapshot without
locking; a concurrent tracking call may land just after the snapshot and
is picked up by the next rebuild.
"""

import logging
import time
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from analytics_engine.config import settings
from analytics_engine.constants.metrics import ADDITIVE_COUNTERS, CONTRIBUTION_FIELDS, ROLLUP_METRICS
from analytics_engine.exceptions import PersistenceConflictError
from analytics_engine.models.analytic import Analytic
from analytics_engine.services.period_service import PeriodRollupEngine
from analytics_engine.utils.dates import utcnow
from analytics_engine.utils.metrics import observe_aggregation
from analytics_engine.utils.scoring import click_through_rate, engagement_score, reaction_count

logger = logging.getLogger(__name__)

RECENT_WINDOW = timedelta(hours=24)


class BaseAggregateBuilder:
    """Builds base analytic rows (no user, no visitor) from per-actor rows."""

    @staticmethod
    def _entity_clause(entity_type: str, entity_id: str):
        return (Analytic.entity_type == entity_type, Analytic.entity_id == entity_id)

    @classmethod
    async def _aggregate(cls, db: AsyncSession, entity_type: str, entity_id: str) -> dict[str, Any]:
        columns = [func.coalesce(func.sum(getattr(Analytic, name)), 0).label(name) for name in ADDITIVE_COUNTERS]
        contributed = or_(*(getattr(Analytic, name) > 0 for name in CONTRIBUTION_FIELDS))

        totals_result = await db.execute(
            select(
                *columns,
                func.count(Analytic.id).label("unique_viewers"),
                func.max(Analytic.last_activity_at).label("last_activity_at"),
            ).where(*cls._entity_clause(entity_type, entity_id), Analytic.per_actor_clause(), Analytic.counted_clause())
        )
        totals = dict(totals_result.mappings().one())

        contributors_result = await db.execute(
            select(func.count(Analytic.id)).where(
                *cls._entity_clause(entity_type, entity_id),
                Analytic.per_actor_clause(),
                Analytic.counted_clause(),
                contributed,
            )
        )
        totals["contributors_count"] = contributors_result.scalar() or 0
        return totals

    @classmethod
    async def _find_base(cls, db: AsyncSession, entity_type: str, entity_id: str) -> Optional[Analytic]:
        result = await db.execute(
            select(Analytic).where(*cls._entity_clause(entity_type, entity_id), Analytic.base_clause())
        )
        return result.scalars().first()

    @classmethod
    async def _get_or_create_base(
        cls, db: AsyncSession, entity_type: str, entity_id: str, now: datetime
    ) -> Analytic:
        base = await cls._find_base(db, entity_type, entity_id)
        if base is not None:
            return base

        base = Analytic(
            entity_type=entity_type,
            entity_id=entity_id,
            action_type="aggregated",
            created_at=now,
            updated_at=now,
        )
        db.add(base)
        try:
            await db.commit()
            await db.refresh(base)
            return base
        except IntegrityError:
            await db.rollback()
            base = await cls._find_base(db, entity_type, entity_id)
            if base is None:
                raise PersistenceConflictError(
                    "Base analytic row missing after unique conflict",
                    details={"entity_type": entity_type, "entity_id": entity_id},
                )
            return base

    @classmethod
    async def rebuild_base(
        cls,
        db: AsyncSession,
        entity_type: str,
        entity_id: str,
        now: Optional[datetime] = None,
    ) -> Optional[Analytic]:
        """
        Overwrite the entity's base row with totals over its per-actor rows.

        Counters are SUMs over the per-actor rows that are not rejected,
        unique_viewers is the number of such rows and last_activity_at the
        latest activity. Headline metrics are then rolled into periods. A
        locked base row is returned unchanged.

        Args:
            db: Database session
            entity_type: Entity type
            entity_id: Entity id
            now: Rebuild instant, used for period buckets (default: now)

        Returns:
            The base row, or None if aggregation is disabled or failed
        """
        if not settings.aggregation_enabled:
            return None

        now = now or utcnow()
        started = time.perf_counter()
        try:
            totals = await cls._aggregate(db, entity_type, entity_id)
            base = await cls._get_or_create_base(db, entity_type, entity_id, now)
            if base.is_locked:
                logger.info("Base analytics for %s:%s are locked, skipping rebuild", entity_type, entity_id)
                return base

            for name in ADDITIVE_COUNTERS:
                setattr(base, name, int(totals[name] or 0))
            base.unique_viewers = int(totals["unique_viewers"] or 0)
            base.contributors_count = int(totals["contributors_count"])
            base.last_activity_at = totals["last_activity_at"] or now
            base.click_through_rate = click_through_rate(base)
            base.trend_score = engagement_score(base)
            base.reaction_counts = reaction_count(base)
            base.updated_at = now

            await db.commit()
            await db.refresh(base)

            # A failed rollup rolls the session back and expires base
            base_id = base.id
            viewers = base.unique_viewers
            values = {metric: getattr(base, metric) for metric in ROLLUP_METRICS}
            for metric, value in values.items():
                await PeriodRollupEngine.rollup(db, base_id, metric, value, as_of=now)

            logger.info("Aggregated analytics for %s:%s (viewers=%d)", entity_type, entity_id, viewers)
            return await db.get(Analytic, base_id, populate_existing=True)
        except Exception as e:
            await db.rollback()
            logger.error("Aggregation failed for %s:%s: %s", entity_type, entity_id, e)
            return None
        finally:
            observe_aggregation("entity", started)

    @staticmethod
    async def entity_types(db: AsyncSession) -> list[str]:
        result = await db.execute(select(Analytic.entity_type).distinct().order_by(Analytic.entity_type))
        return list(result.scalars().all())

    @classmethod
    async def rebuild_all_for_type(
        cls,
        db: AsyncSession,
        entity_type: str,
        batch_size: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> int:
        """
        Rebuild the base row of every entity of ``entity_type``.

        Entity ids are read in batches of ``batch_size`` (default: configured
        aggregation batch size).

        Returns:
            Number of entities rebuilt successfully
        """
        if not settings.aggregation_enabled:
            return 0

        batch_size = batch_size or settings.aggregation_batch_size
        started = time.perf_counter()
        rebuilt = 0
        offset = 0
        try:
            while True:
                result = await db.execute(
                    select(Analytic.entity_id)
                    .where(Analytic.entity_type == entity_type, Analytic.per_actor_clause())
                    .distinct()
                    .order_by(Analytic.entity_id)
                    .offset(offset)
                    .limit(batch_size)
                )
                entity_ids = list(result.scalars().all())
                if not entity_ids:
                    break

                for entity_id in entity_ids:
                    if await cls.rebuild_base(db, entity_type, entity_id, now=now) is not None:
                        rebuilt += 1

                offset += batch_size
                logger.debug("Aggregated batch of %d %s entities", len(entity_ids), entity_type)
        finally:
            observe_aggregation("type", started)

        logger.info("Aggregation completed for %d %s entities", rebuilt, entity_type)
        return rebuilt

    @classmethod
    async def rebuild_recent(
        cls,
        db: AsyncSession,
        window: timedelta = RECENT_WINDOW,
        now: Optional[datetime] = None,
    ) -> int:
        """Rebuild every entity whose per-actor rows were created or active within ``window``."""
        if not settings.aggregation_enabled:
            return 0

        now = now or utcnow()
        cutoff = now - window
        started = time.perf_counter()
        try:
            result = await db.execute(
                select(Analytic.entity_type, Analytic.entity_id)
                .where(
                    Analytic.per_actor_clause(),
                    or_(Analytic.last_activity_at >= cutoff, Analytic.created_at >= cutoff),
                )
                .distinct()
            )
            entities = result.all()

            rebuilt = 0
            for entity_type, entity_id in entities:
                if await cls.rebuild_base(db, entity_type, entity_id, now=now) is not None:
                    rebuilt += 1
        finally:
            observe_aggregation("recent", started)

        logger.info("Aggregated %d recently active entities", rebuilt)
        return rebuilt


aggregate_builder = BaseAggregateBuilder()
