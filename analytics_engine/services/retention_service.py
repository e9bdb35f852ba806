"""
Retention Sweeper

Deletes expired views, analytics and periods, and analytics for entities
that no longer exist. Rows are expired by their own ``created_at``: rows
strictly older than the cutoff are deleted, a row created exactly at the
cutoff is kept. Deleting an analytic row deletes its views and periods.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import and_, delete, not_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from analytics_engine.config import settings
from analytics_engine.constants.metrics import RetentionKind
from analytics_engine.entity_registry import EntityRegistry
from analytics_engine.models.analytic import Analytic
from analytics_engine.models.period import Period
from analytics_engine.models.view import View
from analytics_engine.trackable import EntityRef
from analytics_engine.utils.dates import utcnow
from analytics_engine.utils.metrics import record_retention_deleted

logger = logging.getLogger(__name__)


def retention_days_for(kind: RetentionKind) -> int:
    return {
        RetentionKind.VIEWS: settings.retention_views_days,
        RetentionKind.ANALYTICS: settings.retention_analytics_days,
        RetentionKind.PERIODS: settings.retention_periods_days,
    }[kind]


class RetentionSweeper:
    @staticmethod
    async def _delete_analytics_where(db: AsyncSession, condition, view_condition=None) -> int:
        """Delete analytics matching ``condition`` with their periods and views. No commit."""
        owned = select(Analytic.id).where(condition)
        await db.execute(
            delete(Period).where(Period.analytic_id.in_(owned)).execution_options(synchronize_session=False)
        )

        views_clause = View.analytic_id.in_(owned)
        if view_condition is not None:
            views_clause = views_clause | view_condition
        await db.execute(delete(View).where(views_clause).execution_options(synchronize_session=False))

        result = await db.execute(delete(Analytic).where(condition).execution_options(synchronize_session=False))
        return result.rowcount or 0

    @classmethod
    async def purge_older_than(cls, db: AsyncSession, kind: RetentionKind | str, cutoff: datetime) -> int:
        """
        Delete rows of ``kind`` created before ``cutoff``.

        Args:
            db: Database session
            kind: views, analytics or periods
            cutoff: Rows with created_at < cutoff are deleted

        Returns:
            Number of rows of ``kind`` deleted
        """
        kind = RetentionKind(kind)
        if kind is RetentionKind.VIEWS:
            result = await db.execute(
                delete(View).where(View.created_at < cutoff).execution_options(synchronize_session=False)
            )
            deleted = result.rowcount or 0
        elif kind is RetentionKind.PERIODS:
            result = await db.execute(
                delete(Period).where(Period.created_at < cutoff).execution_options(synchronize_session=False)
            )
            deleted = result.rowcount or 0
        else:
            deleted = await cls._delete_analytics_where(db, Analytic.created_at < cutoff)

        await db.commit()
        record_retention_deleted(kind.value, deleted)
        logger.info("retention: deleted %d %s rows older than %s", deleted, kind.value, cutoff.isoformat())
        return deleted

    @classmethod
    async def purge_expired(
        cls,
        db: AsyncSession,
        now: Optional[datetime] = None,
        days: Optional[dict[str, int]] = None,
    ) -> dict[str, int]:
        """
        Apply the retention period of each kind.

        Args:
            db: Database session
            now: Reference instant (default: now)
            days: Per-kind overrides of the configured retention days

        Returns:
            Deleted row counts keyed by kind
        """
        now = now or utcnow()
        days = days or {}
        deleted = {}
        for kind in (RetentionKind.VIEWS, RetentionKind.PERIODS, RetentionKind.ANALYTICS):
            retention = days.get(kind.value, retention_days_for(kind))
            deleted[kind.value] = await cls.purge_older_than(db, kind, now - timedelta(days=retention))
        return deleted

    @classmethod
    async def purge_entity(cls, db: AsyncSession, entity: EntityRef) -> int:
        """Delete every analytic, view and period of one entity."""
        condition = and_(Analytic.entity_type == entity.entity_type, Analytic.entity_id == entity.entity_id)
        view_condition = and_(View.entity_type == entity.entity_type, View.entity_id == entity.entity_id)
        deleted = await cls._delete_analytics_where(db, condition, view_condition)
        await db.commit()
        logger.info("retention: removed %d analytic rows of deleted entity %s", deleted, entity)
        return deleted

    @classmethod
    async def purge_orphaned(cls, db: AsyncSession, registry: EntityRegistry) -> int:
        """
        Delete analytics whose entity no longer exists.

        For each entity type present in the analytics table: if the registry
        cannot resolve the type, every row of that type is deleted; otherwise
        rows whose entity id is not live are deleted.

        Returns:
            Number of analytic rows deleted
        """
        result = await db.execute(select(Analytic.entity_type).distinct())
        entity_types = list(result.scalars().all())

        total = 0
        for entity_type in entity_types:
            live_ids = await registry.live_ids(db, entity_type)
            condition = Analytic.entity_type == entity_type
            view_condition = View.entity_type == entity_type
            if live_ids is None:
                logger.warning("retention: entity type %s is not resolvable, removing all its analytics", entity_type)
            else:
                condition = and_(condition, not_(Analytic.entity_id.in_(live_ids)))
                view_condition = and_(view_condition, not_(View.entity_id.in_(live_ids)))

            deleted = await cls._delete_analytics_where(db, condition, view_condition)
            await db.commit()
            total += deleted
            if deleted:
                logger.info("retention: removed %d orphaned %s analytic rows", deleted, entity_type)

        record_retention_deleted("orphaned", total)
        return total


retention_sweeper = RetentionSweeper()
