"""
Analytic Moderation Service

Approval, rejection, restoration, locking and counter resets of single
analytic rows. A status or lock change is carried over to the row's views
and periods, so view breakdowns and rollups agree with the row.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from analytics_engine.constants.metrics import COUNTER_FIELDS, RecordStatus
from analytics_engine.exceptions import RecordLockedError, ResourceNotFoundError
from analytics_engine.models.analytic import Analytic
from analytics_engine.models.period import Period
from analytics_engine.models.view import View
from analytics_engine.utils.dates import utcnow

logger = logging.getLogger(__name__)

DERIVED_FIELDS: tuple[str, ...] = ("click_through_rate", "trend_score", "reaction_counts", "contributors_count")

# Audit columns written for each status transition
STATUS_AUDIT: dict[RecordStatus, str] = {
    RecordStatus.APPROVED: "approved",
    RecordStatus.REJECTED: "rejected",
    RecordStatus.ACTIVE: "restored",
}


class AnalyticModerationService:
    @staticmethod
    async def _get(db: AsyncSession, analytic_id: int) -> Analytic:
        analytic = await db.get(Analytic, analytic_id)
        if analytic is None:
            raise ResourceNotFoundError("Analytic", analytic_id)
        return analytic

    @classmethod
    async def set_status(
        cls,
        db: AsyncSession,
        analytic_id: int,
        status: RecordStatus,
        by: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Analytic:
        """
        Move an analytic row (and its views and periods) to ``status``.

        The matching audit pair (``approved_*``, ``rejected_*`` or
        ``restored_*`` for a return to active) records who and when.
        Rejected rows stop counting towards base rows, realtime totals and
        view breakdowns; the next rebuild of the entity reflects the change.

        Args:
            db: Database session
            analytic_id: Analytic row id
            status: New status
            by: Id of whoever made the change
            now: Change timestamp (default: now)

        Returns:
            The updated row

        Raises:
            ResourceNotFoundError: No such analytic row
        """
        status = RecordStatus(status)
        analytic = await cls._get(db, analytic_id)
        now = now or utcnow()

        audit = STATUS_AUDIT[status]
        analytic.analytics_status = status.value
        setattr(analytic, f"{audit}_at", now)
        setattr(analytic, f"{audit}_by", by)
        analytic.updated_by = by
        analytic.updated_at = now

        await db.execute(
            update(View)
            .where(View.analytic_id == analytic_id)
            .values(view_status=status.value)
            .execution_options(synchronize_session=False)
        )
        await db.execute(
            update(Period)
            .where(Period.analytic_id == analytic_id)
            .values(period_status=status.value)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        await db.refresh(analytic)

        logger.info("Analytic %s marked %s by %s", analytic_id, status.value, by or "system")
        return analytic

    async def mark_approved(self, db: AsyncSession, analytic_id: int, by: Optional[str] = None) -> Analytic:
        return await self.set_status(db, analytic_id, RecordStatus.APPROVED, by)

    async def mark_rejected(self, db: AsyncSession, analytic_id: int, by: Optional[str] = None) -> Analytic:
        return await self.set_status(db, analytic_id, RecordStatus.REJECTED, by)

    async def mark_restored(self, db: AsyncSession, analytic_id: int, by: Optional[str] = None) -> Analytic:
        return await self.set_status(db, analytic_id, RecordStatus.ACTIVE, by)

    @classmethod
    async def set_lock(
        cls,
        db: AsyncSession,
        analytic_id: int,
        locked: bool,
        by: Optional[str] = None,
    ) -> Analytic:
        """Lock or unlock a row's counters together with its views and periods."""
        analytic = await cls._get(db, analytic_id)

        analytic.analytics_lock = locked
        analytic.updated_by = by
        await db.execute(
            update(View)
            .where(View.analytic_id == analytic_id)
            .values(view_lock=locked)
            .execution_options(synchronize_session=False)
        )
        await db.execute(
            update(Period)
            .where(Period.analytic_id == analytic_id)
            .values(period_lock=locked)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        await db.refresh(analytic)

        logger.info("Analytic %s %s by %s", analytic_id, "locked" if locked else "unlocked", by or "system")
        return analytic

    @classmethod
    async def reset_counters(cls, db: AsyncSession, analytic_id: int, by: Optional[str] = None) -> Analytic:
        """
        Zero every counter and derived metric of one row.

        Periods keep their history.

        Raises:
            ResourceNotFoundError: No such analytic row
            RecordLockedError: The row is locked
        """
        analytic = await cls._get(db, analytic_id)
        if analytic.is_locked:
            raise RecordLockedError(analytic_id)

        for name in COUNTER_FIELDS + DERIVED_FIELDS:
            setattr(analytic, name, 0)
        analytic.updated_by = by
        await db.commit()
        await db.refresh(analytic)

        logger.info("Counters of analytic %s reset by %s", analytic_id, by or "system")
        return analytic


moderation_service = AnalyticModerationService()
