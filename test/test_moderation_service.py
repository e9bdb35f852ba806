"""
Tests for approval, rejection, locking and counter resets of analytic rows
"""

from datetime import timedelta

import pytest
from conftest import FIXED_NOW
from sqlalchemy import func
from sqlalchemy.future import select

from analytics_engine.constants.metrics import RecordStatus
from analytics_engine.exceptions import RecordLockedError, ResourceNotFoundError
from analytics_engine.models.analytic import Analytic
from analytics_engine.models.period import Period
from analytics_engine.models.view import View
from analytics_engine.services.aggregation_service import aggregate_builder
from analytics_engine.services.aggregator_service import analytic_aggregator
from analytics_engine.services.analytics_service import analytics_service
from analytics_engine.services.moderation_service import moderation_service
from analytics_engine.services.tracking_service import tracking_service


async def tracked_row(db, entity, actor, request) -> int:
    analytic = await tracking_service.track(db, entity, "show", request, actor, now=FIXED_NOW)
    return analytic.id


class TestStatusChanges:
    """Test approval, rejection and restoration"""

    @pytest.mark.asyncio
    async def test_approve_records_who_and_when(self, test_db, entity, user_a, page_request):
        analytic_id = await tracked_row(test_db, entity, user_a, page_request)

        analytic = await moderation_service.set_status(
            test_db, analytic_id, RecordStatus.APPROVED, by="mod-1", now=FIXED_NOW
        )

        assert analytic.analytics_status == "approved"
        assert analytic.approved_by == "mod-1"
        assert analytic.approved_at == FIXED_NOW
        assert analytic.updated_by == "mod-1"
        assert analytic.is_active

    @pytest.mark.asyncio
    async def test_reject_carries_over_to_views_and_periods(self, test_db, entity, user_a, page_request):
        analytic_id = await tracked_row(test_db, entity, user_a, page_request)

        analytic = await moderation_service.mark_rejected(test_db, analytic_id, by="mod-1")

        assert analytic.rejected_by == "mod-1"
        assert analytic.rejected_at is not None
        assert not analytic.is_active
        views = await test_db.execute(select(View.view_status))
        assert set(views.scalars().all()) == {"rejected"}
        periods = await test_db.execute(select(Period.period_status).where(Period.analytic_id == analytic_id))
        assert set(periods.scalars().all()) == {"rejected"}

    @pytest.mark.asyncio
    async def test_rejected_row_leaves_totals_until_restored(self, test_db, entity, user_a, user_b, page_request):
        rejected_id = await tracked_row(test_db, entity, user_a, page_request)
        await tracked_row(test_db, entity, user_b, page_request)
        await moderation_service.mark_rejected(test_db, rejected_id)

        base = await aggregate_builder.rebuild_base(test_db, "article", "42", now=FIXED_NOW)
        live = await analytics_service.get_realtime_totals(test_db, entity)
        stats = await analytics_service.get_view_stats(test_db, entity, days=3650)

        assert base.views_count == 1
        assert live["views"]["total"] == 1
        assert stats["total_views"] == 1

        restored = await moderation_service.mark_restored(test_db, rejected_id, by="mod-2")
        assert restored.analytics_status == "active"
        assert restored.restored_by == "mod-2"

        base = await aggregate_builder.rebuild_base(test_db, "article", "42", now=FIXED_NOW)
        assert base.views_count == 2

    @pytest.mark.asyncio
    async def test_unknown_row(self, test_db):
        with pytest.raises(ResourceNotFoundError):
            await moderation_service.mark_approved(test_db, 999)


class TestLocking:
    """Test that locked rows keep their counters"""

    @pytest.mark.asyncio
    async def test_locked_row_ignores_views(self, test_db, entity, user_a, page_request):
        analytic_id = await tracked_row(test_db, entity, user_a, page_request)

        locked = await moderation_service.set_lock(test_db, analytic_id, True, by="mod-1")
        tracked = await tracking_service.track(
            test_db, entity, "show", page_request, user_a, now=FIXED_NOW + timedelta(hours=1)
        )

        assert locked.is_locked
        assert tracked is None
        result = await test_db.execute(select(Analytic.views_count).where(Analytic.id == analytic_id))
        assert result.scalar() == 1
        result = await test_db.execute(select(View.visited_at, View.view_lock))
        assert result.one() == (FIXED_NOW, True)
        result = await test_db.execute(select(Period.period_lock).where(Period.analytic_id == analytic_id))
        assert set(result.scalars().all()) == {True}

    @pytest.mark.asyncio
    async def test_locked_row_refuses_counter_updates(self, test_db, entity, user_a, page_request):
        analytic_id = await tracked_row(test_db, entity, user_a, page_request)
        await moderation_service.set_lock(test_db, analytic_id, True)

        assert await tracking_service.record_metric(test_db, entity, user_a, "like") is None
        with pytest.raises(RecordLockedError):
            await analytic_aggregator.adjust_metric(test_db, analytic_id, "likes_count")
        assert await analytic_aggregator.record_action(test_db, analytic_id, user_a, "show", page_request) is None

        result = await test_db.execute(
            select(Analytic.likes_count, Analytic.views_count).where(Analytic.id == analytic_id)
        )
        assert result.one() == (0, 1)

    @pytest.mark.asyncio
    async def test_unlock_resumes_counting(self, test_db, entity, user_a, page_request):
        analytic_id = await tracked_row(test_db, entity, user_a, page_request)
        await moderation_service.set_lock(test_db, analytic_id, True)
        await moderation_service.set_lock(test_db, analytic_id, False)

        analytic = await tracking_service.track(
            test_db, entity, "show", page_request, user_a, now=FIXED_NOW + timedelta(hours=1)
        )

        assert analytic.views_count == 2


class TestResetCounters:
    """Test zeroing the counters of one row"""

    @pytest.mark.asyncio
    async def test_reset_zeroes_counters_and_keeps_periods(self, test_db, entity, user_a, page_request):
        analytic_id = await tracked_row(test_db, entity, user_a, page_request)
        await tracking_service.record_metric(test_db, entity, user_a, "like", amount=3)
        await tracking_service.record_metric(test_db, entity, user_a, "impression", amount=4)

        analytic = await moderation_service.reset_counters(test_db, analytic_id, by="mod-1")

        assert analytic.views_count == 0
        assert analytic.likes_count == 0
        assert analytic.impressions_count == 0
        assert analytic.unique_viewers == 0
        assert analytic.trend_score == 0
        assert analytic.updated_by == "mod-1"
        result = await test_db.execute(select(func.count(Period.id)).where(Period.analytic_id == analytic_id))
        assert result.scalar() > 0

    @pytest.mark.asyncio
    async def test_locked_row_cannot_be_reset(self, test_db, entity, user_a, page_request):
        analytic_id = await tracked_row(test_db, entity, user_a, page_request)
        await moderation_service.set_lock(test_db, analytic_id, True)

        with pytest.raises(RecordLockedError):
            await moderation_service.reset_counters(test_db, analytic_id)
