"""
Period Rollup Service

Maintains one Period row per (analytic, metric, granularity, bucket start)
holding the latest snapshot of the metric and its growth against the most
recent earlier bucket.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from analytics_engine.constants.metrics import (
    COUNTER_FIELDS,
    DECLINING_GROWTH_THRESHOLD,
    TRENDING_GROWTH_THRESHOLD,
    Granularity,
)
from analytics_engine.exceptions import InvalidMetricError, PersistenceConflictError, ResourceNotFoundError
from analytics_engine.models.analytic import Analytic
from analytics_engine.models.period import Period
from analytics_engine.utils.dates import iter_period_starts, period_bounds, utcnow
from analytics_engine.utils.scoring import growth_rate

logger = logging.getLogger(__name__)


class PeriodRollupEngine:
    """Snapshot rollups of analytic counters into daily/weekly/monthly/yearly buckets."""

    GRANULARITIES: tuple[Granularity, ...] = tuple(Granularity)

    @staticmethod
    def period_bounds(as_of: date | datetime, granularity: Granularity | str) -> tuple[date, date]:
        return period_bounds(as_of, granularity)

    @staticmethod
    async def _find(
        db: AsyncSession, analytic_id: int, metric: str, granularity: str, start: date
    ) -> Optional[Period]:
        result = await db.execute(
            select(Period).where(
                Period.analytic_id == analytic_id,
                Period.metric == metric,
                Period.granularity == granularity,
                Period.period_start_date == start,
            )
        )
        return result.scalars().first()

    @staticmethod
    async def _previous(
        db: AsyncSession, analytic_id: int, metric: str, granularity: str, start: date
    ) -> Optional[Period]:
        result = await db.execute(
            select(Period)
            .where(
                Period.analytic_id == analytic_id,
                Period.metric == metric,
                Period.granularity == granularity,
                Period.period_start_date < start,
            )
            .order_by(Period.period_start_date.desc())
            .limit(1)
        )
        return result.scalars().first()

    @classmethod
    async def _get_or_create(
        cls, db: AsyncSession, analytic_id: int, metric: str, granularity: str, start: date, end: date
    ) -> Period:
        period = await cls._find(db, analytic_id, metric, granularity, start)
        if period is not None:
            return period

        period = Period(
            analytic_id=analytic_id,
            metric=metric,
            granularity=granularity,
            period_start_date=start,
            period_end_date=end,
            value=0,
            previous_value=0,
        )
        db.add(period)
        try:
            await db.commit()
            await db.refresh(period)
            return period
        except IntegrityError:
            # Another writer created the bucket first
            await db.rollback()
            period = await cls._find(db, analytic_id, metric, granularity, start)
            if period is None:
                raise PersistenceConflictError(
                    "Period bucket vanished after conflict",
                    details={"analytic_id": analytic_id, "metric": metric, "granularity": granularity},
                )
            return period

    @classmethod
    async def _apply_growth(cls, db: AsyncSession, period: Period) -> None:
        previous = await cls._previous(db, period.analytic_id, period.metric, period.granularity, period.period_start_date)
        if previous is not None and previous.value > 0:
            period.previous_value = previous.value
            period.growth_rate = growth_rate(period.value, previous.value)
        else:
            period.growth_rate = None

    @classmethod
    async def upsert_period(
        cls,
        db: AsyncSession,
        analytic_id: int,
        metric: str,
        value: int,
        as_of: Optional[datetime] = None,
        granularity: Granularity | str = Granularity.DAILY,
    ) -> Period:
        """
        Write ``value`` into the bucket containing ``as_of`` and recompute growth.

        Args:
            db: Database session
            analytic_id: Owning analytic record
            metric: Counter column name
            value: Current snapshot of the counter
            as_of: Instant inside the bucket (default: now)
            granularity: Bucket size

        Returns:
            The updated Period, or the unchanged one when the bucket is locked
        """
        if metric not in COUNTER_FIELDS:
            raise InvalidMetricError(metric)

        granularity = Granularity(granularity).value
        start, end = period_bounds(as_of or utcnow(), granularity)

        period = await cls._get_or_create(db, analytic_id, metric, granularity, start, end)
        if period.period_lock:
            return period
        period.value = int(value or 0)
        await cls._apply_growth(db, period)
        await db.commit()
        await db.refresh(period)
        return period

    @classmethod
    async def rollup(
        cls,
        db: AsyncSession,
        analytic_id: int,
        metric: str,
        value: int,
        as_of: Optional[datetime] = None,
    ) -> list[Period]:
        """Upsert ``metric`` for every granularity; a failing granularity is logged and skipped."""
        as_of = as_of or utcnow()
        periods = []
        for granularity in cls.GRANULARITIES:
            try:
                periods.append(await cls.upsert_period(db, analytic_id, metric, value, as_of, granularity))
            except Exception as e:
                await db.rollback()
                logger.error(
                    "Period rollup failed for analytic=%s metric=%s granularity=%s: %s",
                    analytic_id,
                    metric,
                    granularity.value,
                    e,
                )
        return periods

    @staticmethod
    async def _historical_value(db: AsyncSession, analytic: Analytic, metric: str, before: datetime) -> int:
        """
        Best estimate of ``metric`` at ``before`` from the per-actor rows that existed then.

        Counters are cumulative snapshots, so rows created later contribute nothing.
        """
        if analytic.is_base:
            if metric == "unique_viewers":
                column = func.count(Analytic.id)
            else:
                column = func.coalesce(func.sum(getattr(Analytic, metric)), 0)
            result = await db.execute(
                select(column).where(
                    Analytic.entity_type == analytic.entity_type,
                    Analytic.entity_id == analytic.entity_id,
                    Analytic.per_actor_clause(),
                    Analytic.counted_clause(),
                    Analytic.created_at < before,
                )
            )
            return int(result.scalar() or 0)

        if analytic.created_at is not None and analytic.created_at < before:
            return int(getattr(analytic, metric) or 0)
        return 0

    @classmethod
    async def backfill(
        cls,
        db: AsyncSession,
        analytic_id: int,
        metric: str,
        granularity: Granularity | str,
        since: date,
        until: Optional[date] = None,
    ) -> list[Period]:
        """
        Create the missing buckets between ``since`` and ``until``.

        Existing buckets keep their value; buckets whose growth could not be
        computed because of a gap get their growth recomputed once the gap is
        filled.

        Returns:
            The newly created periods, oldest first
        """
        if metric not in COUNTER_FIELDS:
            raise InvalidMetricError(metric)

        analytic = await db.get(Analytic, analytic_id)
        if analytic is None:
            raise ResourceNotFoundError("Analytic", analytic_id)

        granularity = Granularity(granularity).value
        until = until or utcnow().date()

        existing_result = await db.execute(
            select(Period).where(
                Period.analytic_id == analytic_id,
                Period.metric == metric,
                Period.granularity == granularity,
                Period.period_start_date >= period_bounds(since, granularity)[0],
                Period.period_start_date <= until,
            )
        )
        existing = {period.period_start_date: period for period in existing_result.scalars().all()}

        created = []
        for start in iter_period_starts(since, until, granularity):
            if start in existing:
                continue
            _, end = period_bounds(start, granularity)
            value = await cls._historical_value(
                db, analytic, metric, datetime.combine(end + timedelta(days=1), datetime.min.time())
            )
            period = Period(
                analytic_id=analytic_id,
                metric=metric,
                granularity=granularity,
                period_start_date=start,
                period_end_date=end,
                value=value,
                previous_value=0,
            )
            db.add(period)
            created.append(period)

        if not created:
            return []

        await db.flush()

        # Growth is recomputed oldest first so each bucket sees its filled predecessor
        for start in sorted(set(existing) | {period.period_start_date for period in created}):
            period = existing.get(start)
            if period is not None and period.growth_rate is not None:
                continue
            if period is None:
                period = next(p for p in created if p.period_start_date == start)
            await cls._apply_growth(db, period)
            await db.flush()

        await db.commit()
        logger.info(
            "Backfilled %d %s buckets of %s for analytic %s", len(created), granularity, metric, analytic_id
        )
        return created

    @staticmethod
    async def _by_growth(
        db: AsyncSession,
        entity_type: Optional[str],
        metric: str,
        granularity: Granularity | str,
        condition,
        descending: bool,
        as_of: Optional[datetime],
        limit: int,
    ) -> list[Period]:
        granularity = Granularity(granularity).value
        start, _ = period_bounds(as_of or utcnow(), granularity)
        query = (
            select(Period)
            .join(Analytic, Analytic.id == Period.analytic_id)
            .where(
                Period.metric == metric,
                Period.granularity == granularity,
                Period.period_start_date == start,
                Period.growth_rate.is_not(None),
                condition,
                Analytic.base_clause(),
            )
        )
        if entity_type:
            query = query.where(Analytic.entity_type == entity_type)
        order = Period.growth_rate.desc() if descending else Period.growth_rate.asc()
        result = await db.execute(query.order_by(order).limit(limit))
        return list(result.scalars().all())

    @classmethod
    async def trending(
        cls,
        db: AsyncSession,
        entity_type: Optional[str] = None,
        metric: str = "views_count",
        granularity: Granularity | str = Granularity.DAILY,
        min_growth: float = TRENDING_GROWTH_THRESHOLD,
        as_of: Optional[datetime] = None,
        limit: int = 10,
    ) -> list[Period]:
        """Base-row buckets in the current period with growth at or above ``min_growth``."""
        return await cls._by_growth(
            db, entity_type, metric, granularity, Period.growth_rate >= min_growth, True, as_of, limit
        )

    @classmethod
    async def declining(
        cls,
        db: AsyncSession,
        entity_type: Optional[str] = None,
        metric: str = "views_count",
        granularity: Granularity | str = Granularity.DAILY,
        max_growth: float = DECLINING_GROWTH_THRESHOLD,
        as_of: Optional[datetime] = None,
        limit: int = 10,
    ) -> list[Period]:
        """Base-row buckets in the current period with growth at or below ``max_growth``."""
        return await cls._by_growth(
            db, entity_type, metric, granularity, Period.growth_rate <= max_growth, False, as_of, limit
        )


period_engine = PeriodRollupEngine()
