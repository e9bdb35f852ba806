"""
Tests for the Base Aggregate Builder
"""

from datetime import datetime, timedelta

import pytest
from conftest import miss_first_lookup
from sqlalchemy.future import select

from analytics_engine.config import settings
from analytics_engine.constants.metrics import ROLLUP_METRICS, Granularity
from analytics_engine.models.analytic import Analytic
from analytics_engine.models.period import Period
from analytics_engine.services.aggregation_service import BaseAggregateBuilder, aggregate_builder
from analytics_engine.services.period_service import PeriodRollupEngine

NOW = datetime(2024, 3, 14, 12, 0, 0)


async def add_actor_row(db, entity_id="42", entity_type="article", **fields) -> Analytic:
    fields.setdefault("user_id", None)
    fields.setdefault("created_at", NOW - timedelta(days=2))
    analytic = Analytic(entity_type=entity_type, entity_id=entity_id, unique_viewers=1, **fields)
    db.add(analytic)
    await db.commit()
    await db.refresh(analytic)
    return analytic


@pytest.fixture
def weekly_views_rollup_fails(monkeypatch):
    """Fail every weekly views_count upsert; other buckets are written normally."""
    original = PeriodRollupEngine.upsert_period.__func__

    async def flaky(cls, db, analytic_id, metric, value, as_of=None, granularity="daily"):
        if metric == "views_count" and Granularity(granularity) is Granularity.WEEKLY:
            raise RuntimeError("disk full")
        return await original(cls, db, analytic_id, metric, value, as_of, granularity)

    monkeypatch.setattr(PeriodRollupEngine, "upsert_period", classmethod(flaky))


class TestRebuildBase:
    """Test base row recomputation"""

    @pytest.mark.asyncio
    async def test_sums_counters_over_actors(self, test_db):
        await add_actor_row(test_db, user_id="a", views_count=3, likes_count=1, last_activity_at=NOW - timedelta(hours=5))
        await add_actor_row(test_db, user_id="b", views_count=1, shares_count=2, last_activity_at=NOW - timedelta(hours=1))
        await add_actor_row(test_db, visitor_token="v1", views_count=2)

        base = await aggregate_builder.rebuild_base(test_db, "article", "42", now=NOW)

        assert base.is_base
        assert base.views_count == 6
        assert base.likes_count == 1
        assert base.shares_count == 2
        assert base.unique_viewers == 3
        assert base.contributors_count == 2
        assert base.reaction_counts == 3
        assert base.last_activity_at == NOW - timedelta(hours=1)
        assert base.action_type == "aggregated"

    @pytest.mark.asyncio
    async def test_ignores_other_entities(self, test_db):
        await add_actor_row(test_db, user_id="a", views_count=3)
        await add_actor_row(test_db, entity_id="7", user_id="a", views_count=100)

        base = await aggregate_builder.rebuild_base(test_db, "article", "42", now=NOW)

        assert base.views_count == 3
        assert base.unique_viewers == 1

    @pytest.mark.asyncio
    async def test_rebuild_overwrites_instead_of_adding(self, test_db):
        row = await add_actor_row(test_db, user_id="a", views_count=3)
        await aggregate_builder.rebuild_base(test_db, "article", "42", now=NOW)

        row.views_count = 4
        await test_db.commit()
        base = await aggregate_builder.rebuild_base(test_db, "article", "42", now=NOW)

        assert base.views_count == 4
        result = await test_db.execute(select(Analytic).where(Analytic.base_clause()))
        assert len(result.scalars().all()) == 1

    @pytest.mark.asyncio
    async def test_derived_metrics(self, test_db):
        await add_actor_row(test_db, user_id="a", views_count=100, likes_count=20, shares_count=10, clicks_count=15)
        await add_actor_row(
            test_db, user_id="b", replies_count=5, follows_count=3, bookmarks_count=2, impressions_count=60
        )

        base = await aggregate_builder.rebuild_base(test_db, "article", "42", now=NOW)

        assert base.trend_score == 25.15
        assert base.click_through_rate == 25.0

    @pytest.mark.asyncio
    async def test_rolls_headline_metrics_into_periods(self, test_db):
        await add_actor_row(test_db, user_id="a", views_count=3)

        base = await aggregate_builder.rebuild_base(test_db, "article", "42", now=NOW)

        result = await test_db.execute(
            select(Period).where(
                Period.analytic_id == base.id, Period.metric == "views_count", Period.granularity == "daily"
            )
        )
        period = result.scalars().one()
        assert period.value == 3
        assert period.period_start_date == NOW.date()

    @pytest.mark.asyncio
    async def test_entity_without_actors_gets_empty_base(self, test_db):
        base = await aggregate_builder.rebuild_base(test_db, "article", "404", now=NOW)

        assert base.views_count == 0
        assert base.unique_viewers == 0
        assert base.last_activity_at == NOW

    @pytest.mark.asyncio
    async def test_disabled_aggregation(self, test_db):
        settings.aggregation_enabled = False
        await add_actor_row(test_db, user_id="a", views_count=3)

        assert await aggregate_builder.rebuild_base(test_db, "article", "42", now=NOW) is None
        assert await aggregate_builder.rebuild_all_for_type(test_db, "article", now=NOW) == 0
        assert await aggregate_builder.rebuild_recent(test_db, now=NOW) == 0


    @pytest.mark.asyncio
    async def test_failed_granularity_does_not_stop_rebuild(self, test_db, weekly_views_rollup_fails):
        await add_actor_row(test_db, user_id="a", views_count=3, likes_count=2)

        base = await aggregate_builder.rebuild_base(test_db, "article", "42", now=NOW)

        assert base is not None
        assert base.views_count == 3
        assert base.likes_count == 2
        result = await test_db.execute(
            select(Period.metric, Period.granularity).where(Period.analytic_id == base.id)
        )
        written = {tuple(row) for row in result.all()}
        assert len(written) == len(ROLLUP_METRICS) * 4 - 1
        assert ("views_count", "weekly") not in written
        assert ("likes_count", "weekly") in written
        assert ("unique_viewers", "yearly") in written

    @pytest.mark.asyncio
    async def test_base_row_conflict_reuses_existing_row(self, test_db, monkeypatch):
        await add_actor_row(test_db, user_id="a", views_count=3)
        first = await aggregate_builder.rebuild_base(test_db, "article", "42", now=NOW)
        base_id = first.id
        await add_actor_row(test_db, user_id="b", views_count=2)
        lookups = miss_first_lookup(monkeypatch, BaseAggregateBuilder, "_find_base")

        base = await aggregate_builder.rebuild_base(test_db, "article", "42", now=NOW)

        assert lookups["count"] == 2
        assert base.id == base_id
        assert base.views_count == 5
        assert base.unique_viewers == 2
        result = await test_db.execute(select(Analytic.id).where(Analytic.base_clause()))
        assert list(result.scalars().all()) == [base_id]

    @pytest.mark.asyncio
    async def test_rejected_rows_are_left_out(self, test_db):
        await add_actor_row(test_db, user_id="a", views_count=3)
        await add_actor_row(test_db, user_id="b", views_count=40, analytics_status="rejected")

        base = await aggregate_builder.rebuild_base(test_db, "article", "42", now=NOW)

        assert base.views_count == 3
        assert base.unique_viewers == 1

    @pytest.mark.asyncio
    async def test_locked_base_row_is_not_rebuilt(self, test_db):
        await add_actor_row(test_db, user_id="a", views_count=3)
        base = await aggregate_builder.rebuild_base(test_db, "article", "42", now=NOW)
        base.analytics_lock = True
        await test_db.commit()
        await add_actor_row(test_db, user_id="b", views_count=2)

        base = await aggregate_builder.rebuild_base(test_db, "article", "42", now=NOW)

        assert base.views_count == 3


class TestBatchRebuilds:
    """Test rebuilding many entities"""

    @pytest.mark.asyncio
    async def test_rebuild_all_for_type_pages_through_entities(self, test_db):
        for entity_id in ("1", "2", "3"):
            await add_actor_row(test_db, entity_id=entity_id, user_id="a", views_count=int(entity_id))
        await add_actor_row(test_db, entity_id="1", entity_type="video", user_id="a", views_count=9)

        rebuilt = await aggregate_builder.rebuild_all_for_type(test_db, "article", batch_size=2, now=NOW)

        assert rebuilt == 3
        result = await test_db.execute(
            select(Analytic.entity_type, Analytic.entity_id, Analytic.views_count)
            .where(Analytic.base_clause())
            .order_by(Analytic.entity_id)
        )
        assert result.all() == [("article", "1", 1), ("article", "2", 2), ("article", "3", 3)]

    @pytest.mark.asyncio
    async def test_failed_granularity_still_counts_as_rebuilt(self, test_db, weekly_views_rollup_fails):
        for entity_id in ("1", "2"):
            await add_actor_row(test_db, entity_id=entity_id, user_id="a", views_count=1)

        assert await aggregate_builder.rebuild_all_for_type(test_db, "article", now=NOW) == 2

    @pytest.mark.asyncio
    async def test_rebuild_recent_only_touches_active_entities(self, test_db):
        await add_actor_row(
            test_db,
            entity_id="fresh",
            user_id="a",
            views_count=1,
            created_at=NOW - timedelta(days=30),
            last_activity_at=NOW - timedelta(hours=2),
        )
        await add_actor_row(
            test_db,
            entity_id="stale",
            user_id="a",
            views_count=1,
            created_at=NOW - timedelta(days=30),
            last_activity_at=NOW - timedelta(days=3),
        )

        rebuilt = await aggregate_builder.rebuild_recent(test_db, now=NOW)

        assert rebuilt == 1
        result = await test_db.execute(select(Analytic.entity_id).where(Analytic.base_clause()))
        assert result.scalars().all() == ["fresh"]

    @pytest.mark.asyncio
    async def test_entity_types(self, test_db):
        await add_actor_row(test_db, entity_type="video", user_id="a")
        await add_actor_row(test_db, entity_type="article", user_id="a")

        assert await aggregate_builder.entity_types(test_db) == ["article", "video"]
