"""
Tests for the Retention Sweeper and entity registry
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import func
from sqlalchemy.future import select

from analytics_engine.entity_registry import EntityRegistry
from analytics_engine.models.analytic import Analytic
from analytics_engine.models.period import Period
from analytics_engine.models.view import View
from analytics_engine.services.retention_service import retention_sweeper
from analytics_engine.trackable import EntityRef

NOW = datetime(2024, 3, 14, 12, 0, 0)


async def count(db, model) -> int:
    result = await db.execute(select(func.count()).select_from(model))
    return result.scalar()


async def seed_entity(db, entity_id="42", entity_type="article", created_at=NOW) -> Analytic:
    """One per-actor analytic with a view and a period."""
    analytic = Analytic(entity_type=entity_type, entity_id=entity_id, user_id="a", created_at=created_at)
    db.add(analytic)
    await db.commit()
    await db.refresh(analytic)

    db.add(
        View(
            analytic_id=analytic.id,
            entity_type=entity_type,
            entity_id=entity_id,
            action_type="view",
            request_path="/",
            user_id="a",
            created_at=created_at,
        )
    )
    db.add(
        Period(
            analytic_id=analytic.id,
            metric="views_count",
            granularity="daily",
            period_start_date=created_at.date(),
            period_end_date=created_at.date(),
            value=1,
            created_at=created_at,
        )
    )
    await db.commit()
    return analytic


class TestPurgeOlderThan:
    """Test age based retention"""

    @pytest.mark.asyncio
    async def test_row_at_cutoff_is_kept(self, test_db):
        cutoff = NOW - timedelta(days=365)
        await seed_entity(test_db, entity_id="old", created_at=cutoff - timedelta(seconds=1))
        await seed_entity(test_db, entity_id="edge", created_at=cutoff)

        deleted = await retention_sweeper.purge_older_than(test_db, "views", cutoff)

        assert deleted == 1
        result = await test_db.execute(select(View.entity_id))
        assert result.scalars().all() == ["edge"]

    @pytest.mark.asyncio
    async def test_periods_only_touch_periods(self, test_db):
        await seed_entity(test_db, created_at=NOW - timedelta(days=2000))

        deleted = await retention_sweeper.purge_older_than(test_db, "periods", NOW - timedelta(days=1095))

        assert deleted == 1
        assert await count(test_db, Period) == 0
        assert await count(test_db, Analytic) == 1
        assert await count(test_db, View) == 1

    @pytest.mark.asyncio
    async def test_analytics_take_their_children(self, test_db):
        await seed_entity(test_db, entity_id="old", created_at=NOW - timedelta(days=800))
        await seed_entity(test_db, entity_id="new", created_at=NOW - timedelta(days=10))

        deleted = await retention_sweeper.purge_older_than(test_db, "analytics", NOW - timedelta(days=730))

        assert deleted == 1
        assert await count(test_db, Analytic) == 1
        assert await count(test_db, View) == 1
        assert await count(test_db, Period) == 1


class TestPurgeExpired:
    """Test applying every retention policy"""

    @pytest.mark.asyncio
    async def test_uses_configured_days(self, test_db):
        await seed_entity(test_db, entity_id="400", created_at=NOW - timedelta(days=400))
        await seed_entity(test_db, entity_id="10", created_at=NOW - timedelta(days=10))

        deleted = await retention_sweeper.purge_expired(test_db, now=NOW)

        assert deleted == {"views": 1, "periods": 0, "analytics": 0}
        assert await count(test_db, Analytic) == 2

    @pytest.mark.asyncio
    async def test_overrides(self, test_db):
        await seed_entity(test_db, created_at=NOW - timedelta(days=40))

        deleted = await retention_sweeper.purge_expired(test_db, now=NOW, days={"analytics": 30})

        assert deleted["analytics"] == 1
        assert await count(test_db, Analytic) == 0
        assert await count(test_db, Period) == 0


class TestPurgeEntity:
    """Test removing a deleted entity"""

    @pytest.mark.asyncio
    async def test_removes_only_that_entity(self, test_db):
        await seed_entity(test_db, entity_id="42")
        await seed_entity(test_db, entity_id="43")
        test_db.add(
            View(entity_type="article", entity_id="42", action_type="view", request_path="/other", visitor_token="v")
        )
        await test_db.commit()

        deleted = await retention_sweeper.purge_entity(test_db, EntityRef("article", "42"))

        assert deleted == 1
        result = await test_db.execute(select(View.entity_id))
        assert result.scalars().all() == ["43"]
        assert await count(test_db, Period) == 1


class TestPurgeOrphaned:
    """Test orphan cleanup against the entity registry"""

    @pytest.mark.asyncio
    async def test_deletes_rows_of_missing_entities(self, test_db):
        await seed_entity(test_db, entity_id="1")
        await seed_entity(test_db, entity_id="2")
        registry = EntityRegistry()

        async def live_articles(db):
            return [1]

        registry.register("article", live_articles)

        deleted = await retention_sweeper.purge_orphaned(test_db, registry)

        assert deleted == 1
        result = await test_db.execute(select(Analytic.entity_id))
        assert result.scalars().all() == ["1"]
        assert await count(test_db, View) == 1

    @pytest.mark.asyncio
    async def test_unregistered_type_is_removed(self, test_db):
        await seed_entity(test_db, entity_type="gallery")

        deleted = await retention_sweeper.purge_orphaned(test_db, EntityRegistry())

        assert deleted == 1
        assert await count(test_db, Analytic) == 0

    @pytest.mark.asyncio
    async def test_failing_resolver_counts_as_unresolvable(self, test_db):
        registry = EntityRegistry()

        async def broken(db):
            raise RuntimeError("catalog offline")

        registry.register("article", broken)

        assert await registry.live_ids(test_db, "article") is None
        assert registry.is_registered("article")
        registry.unregister("article")
        assert registry.entity_types == []

