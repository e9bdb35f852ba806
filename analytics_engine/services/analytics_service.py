"""
Analytics Service

Read-side queries over analytics, views and periods: entity summaries,
audience breakdowns, time series and rankings. Summaries are cached in
Redis when it is available.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Optional

from sqlalchemy import and_, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from analytics_engine.constants.metrics import ADDITIVE_COUNTERS, ROLLUP_METRICS, Granularity
from analytics_engine.exceptions import InvalidMetricError
from analytics_engine.models.analytic import Analytic
from analytics_engine.models.period import Period
from analytics_engine.models.view import View
from analytics_engine.trackable import EntityRef
from analytics_engine.utils.cache import CacheManager, get_cache_manager
from analytics_engine.utils.dates import utcnow
from analytics_engine.utils.scoring import (
    click_through_rate,
    engagement_rate,
    engagement_score,
    format_count,
    popularity_score,
)

logger = logging.getLogger(__name__)


def _entity_views(entity: EntityRef, start_date: datetime):
    return and_(
        View.entity_type == entity.entity_type,
        View.entity_id == entity.entity_id,
        View.visited_at >= start_date,
        View.counted_clause(),
    )


class AnalyticsService:
    """Service for reading entity analytics"""

    @staticmethod
    async def get_base(db: AsyncSession, entity: EntityRef) -> Optional[Analytic]:
        result = await db.execute(
            select(Analytic).where(
                Analytic.entity_type == entity.entity_type,
                Analytic.entity_id == entity.entity_id,
                Analytic.base_clause(),
            )
        )
        return result.scalars().first()

    @staticmethod
    def _summarize(entity: EntityRef, row: Any) -> dict[str, Any]:
        def value(name: str) -> int:
            return int(getattr(row, name, 0) or 0)

        last_activity = getattr(row, "last_activity_at", None)
        return {
            "entity_type": entity.entity_type,
            "entity_id": entity.entity_id,
            "views": {
                "total": value("views_count"),
                "unique": value("unique_viewers"),
                "users": value("user_views"),
                "public": value("public_views"),
                "bots": value("bot_views"),
                "humans": value("human_views"),
            },
            "engagement": {
                "likes": value("likes_count"),
                "shares": value("shares_count"),
                "comments": value("comments_count"),
                "replies": value("replies_count"),
                "bookmarks": value("bookmarks_count"),
                "clicks": value("clicks_count"),
                "impressions": value("impressions_count"),
                "click_through_rate": float(getattr(row, "click_through_rate", 0.0) or 0.0),
            },
            "performance": {
                "trend_score": float(getattr(row, "trend_score", 0.0) or 0.0),
                "contributors": value("contributors_count"),
                "last_activity": last_activity.isoformat() if last_activity else None,
            },
        }

    @staticmethod
    async def get_summary(db: AsyncSession, entity: EntityRef) -> dict[str, Any]:
        """
        Totals for one entity, read from its base row, with caching.

        The base row is rebuilt periodically, so these figures may lag behind
        ``get_realtime_totals``. An entity without a base row reports zeros.

        Args:
            db: Database session
            entity: Entity to summarize

        Returns:
            Dict with views, engagement and performance sections
        """
        cache_key = f"{CacheManager.PREFIX_SUMMARY}{entity.entity_type}:{entity.entity_id}"

        try:
            cm = await get_cache_manager()
            cached_data = await cm.get(cache_key)
            if cached_data is not None:
                logger.debug("Summary for %s served from cache", entity)
                return cached_data
        except Exception as e:
            logger.warning(f"Cache read failed: {e}")

        base = await AnalyticsService.get_base(db, entity)
        result = AnalyticsService._summarize(entity, base)
        result["generated_at"] = utcnow().isoformat()

        try:
            cm = await get_cache_manager()
            await cm.set(cache_key, result, CacheManager.TTL_ANALYTICS)
        except Exception as e:
            logger.warning(f"Cache write failed: {e}")

        return result

    @staticmethod
    async def get_realtime_totals(db: AsyncSession, entity: EntityRef) -> dict[str, Any]:
        """Live sums over the per-actor rows, bypassing the base row."""
        columns = [func.coalesce(func.sum(getattr(Analytic, name)), 0).label(name) for name in ADDITIVE_COUNTERS]
        result = await db.execute(
            select(
                *columns,
                func.count(Analytic.id).label("unique_viewers"),
                func.max(Analytic.last_activity_at).label("last_activity_at"),
            ).where(
                Analytic.entity_type == entity.entity_type,
                Analytic.entity_id == entity.entity_id,
                Analytic.per_actor_clause(),
                Analytic.counted_clause(),
            )
        )
        row = result.one()
        totals = {name: int(getattr(row, name) or 0) for name in ADDITIVE_COUNTERS}
        totals["unique_viewers"] = int(row.unique_viewers or 0)

        summary = AnalyticsService._summarize(entity, None)
        summary["views"].update(
            total=totals["views_count"],
            unique=totals["unique_viewers"],
            users=totals["user_views"],
            public=totals["public_views"],
            bots=totals["bot_views"],
            humans=totals["human_views"],
        )
        summary["engagement"].update(
            likes=totals["likes_count"],
            shares=totals["shares_count"],
            comments=totals["comments_count"],
            replies=totals["replies_count"],
            bookmarks=totals["bookmarks_count"],
            clicks=totals["clicks_count"],
            impressions=totals["impressions_count"],
            click_through_rate=click_through_rate(totals),
        )
        summary["performance"].update(
            trend_score=engagement_score(totals),
            last_activity=row.last_activity_at.isoformat() if row.last_activity_at else None,
        )
        return summary

    @staticmethod
    async def get_view_stats(db: AsyncSession, entity: EntityRef, days: int = 30) -> dict[str, Any]:
        """View rows for an entity: totals, by action and per day."""
        start_date = utcnow() - timedelta(days=days)
        condition = _entity_views(entity, start_date)

        total_result = await db.execute(
            select(
                func.count(View.id).label("total"),
                func.count(func.distinct(func.coalesce(View.user_id, View.visitor_token))).label("unique_visitors"),
            ).where(condition)
        )
        totals = total_result.one()

        action_result = await db.execute(
            select(View.action_type, func.count(View.id)).where(condition).group_by(View.action_type)
        )
        views_by_action: dict[str, int] = dict(action_result.all())

        daily_result = await db.execute(
            select(func.date(View.visited_at).label("date"), func.count(View.id).label("views"))
            .where(condition)
            .group_by(func.date(View.visited_at))
            .order_by(func.date(View.visited_at))
        )
        daily_views = [{"date": str(r[0]), "views": r[1]} for r in daily_result.all()]

        return {
            "entity_type": entity.entity_type,
            "entity_id": entity.entity_id,
            "period_days": days,
            "total_views": totals.total or 0,
            "unique_visitors": totals.unique_visitors or 0,
            "views_by_action": views_by_action,
            "daily_views": daily_views,
        }

    @staticmethod
    async def get_unique_viewer_stats(db: AsyncSession, entity: EntityRef, days: int = 30) -> dict[str, Any]:
        """Distinct users, visitors, sessions and IP addresses that viewed the entity."""
        start_date = utcnow() - timedelta(days=days)
        result = await db.execute(
            select(
                func.count(func.distinct(View.user_id)).label("users"),
                func.count(func.distinct(View.visitor_token)).label("visitors"),
                func.count(func.distinct(View.session_id)).label("sessions"),
                func.count(func.distinct(View.ip_address)).label("ip_addresses"),
            ).where(_entity_views(entity, start_date))
        )
        row = result.one()
        return {
            "period_days": days,
            "unique_users": row.users or 0,
            "unique_visitors": row.visitors or 0,
            "unique_sessions": row.sessions or 0,
            "unique_ip_addresses": row.ip_addresses or 0,
        }

    @staticmethod
    async def _breakdown(
        db: AsyncSession, entity: EntityRef, column, days: int, limit: int = 10
    ) -> list[dict[str, Any]]:
        start_date = utcnow() - timedelta(days=days)
        label = func.coalesce(column, "Unknown")
        result = await db.execute(
            select(
                label.label("name"),
                func.count(View.id).label("views"),
                func.count(func.distinct(func.coalesce(View.user_id, View.visitor_token))).label("visitors"),
            )
            .where(_entity_views(entity, start_date))
            .group_by(label)
            .order_by(func.count(View.id).desc())
            .limit(limit)
        )
        return [{"name": name, "views": views, "unique_visitors": visitors} for name, views, visitors in result.all()]

    @staticmethod
    async def get_browser_analytics(db: AsyncSession, entity: EntityRef, days: int = 30) -> dict[str, Any]:
        return {
            "period_days": days,
            "browsers": await AnalyticsService._breakdown(db, entity, View.browser, days),
            "operating_systems": await AnalyticsService._breakdown(db, entity, View.os, days),
        }

    @staticmethod
    async def get_device_analytics(db: AsyncSession, entity: EntityRef, days: int = 30) -> dict[str, Any]:
        return {
            "period_days": days,
            "devices": await AnalyticsService._breakdown(db, entity, View.device, days),
            "device_types": await AnalyticsService._breakdown(db, entity, View.device_type, days),
            "platforms": await AnalyticsService._breakdown(db, entity, View.platform, days),
        }

    @staticmethod
    async def get_bot_analytics(db: AsyncSession, entity: EntityRef, days: int = 30) -> dict[str, Any]:
        """Bot versus human views, with bot names and categories."""
        start_date = utcnow() - timedelta(days=days)
        condition = _entity_views(entity, start_date)

        split_result = await db.execute(select(View.is_robot, func.count(View.id)).where(condition).group_by(View.is_robot))
        split = {bool(is_robot): count for is_robot, count in split_result.all()}
        bot_views = split.get(True, 0)
        human_views = split.get(False, 0)
        total = bot_views + human_views

        names_result = await db.execute(
            select(View.robot_name, func.count(View.id))
            .where(condition, View.is_robot.is_(True))
            .group_by(View.robot_name)
            .order_by(func.count(View.id).desc())
            .limit(10)
        )
        categories_result = await db.execute(
            select(View.robot_category, func.count(View.id))
            .where(condition, View.is_robot.is_(True))
            .group_by(View.robot_category)
        )

        return {
            "period_days": days,
            "bot_views": bot_views,
            "human_views": human_views,
            "bot_ratio": round(bot_views / total * 100, 2) if total else 0.0,
            "top_bots": [{"name": name, "views": count} for name, count in names_result.all()],
            "bots_by_category": {category or "Unknown": count for category, count in categories_result.all()},
        }

    @staticmethod
    async def get_geolocation_analytics(
        db: AsyncSession, entity: EntityRef, days: int = 30, limit: int = 50
    ) -> dict[str, Any]:
        """Views by country and by city; rows without a known location are skipped."""
        start_date = utcnow() - timedelta(days=days)
        condition = and_(
            _entity_views(entity, start_date),
            View.country_code.is_not(None),
            View.country_code != "XX",
        )

        country_result = await db.execute(
            select(View.country, View.country_code, func.count(View.id))
            .where(condition)
            .group_by(View.country, View.country_code)
            .order_by(func.count(View.id).desc())
            .limit(limit)
        )
        city_result = await db.execute(
            select(View.city, View.country_code, func.count(View.id))
            .where(condition, View.city.is_not(None))
            .group_by(View.city, View.country_code)
            .order_by(func.count(View.id).desc())
            .limit(limit)
        )

        return {
            "period_days": days,
            "countries": [
                {"country": country, "country_code": code, "views": count}
                for country, code, count in country_result.all()
            ],
            "cities": [{"city": city, "country_code": code, "views": count} for city, code, count in city_result.all()],
        }

    @staticmethod
    async def get_period_series(
        db: AsyncSession,
        entity: EntityRef,
        metric: str = "views_count",
        granularity: Granularity | str = Granularity.DAILY,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> list[dict[str, Any]]:
        """
        Period buckets of the entity's base row for one metric.

        Args:
            db: Database session
            entity: Entity to chart
            metric: Rolled-up metric name
            granularity: daily, weekly, monthly or yearly
            start: First bucket start date to include
            end: Last bucket start date to include

        Raises:
            InvalidMetricError: ``metric`` is never rolled up
        """
        if metric not in ROLLUP_METRICS:
            raise InvalidMetricError(metric)
        granularity = Granularity(granularity)

        query = (
            select(Period)
            .join(Analytic, Analytic.id == Period.analytic_id)
            .where(
                Analytic.entity_type == entity.entity_type,
                Analytic.entity_id == entity.entity_id,
                Analytic.base_clause(),
                Period.metric == metric,
                Period.granularity == granularity.value,
            )
            .order_by(Period.period_start_date)
        )
        if start is not None:
            query = query.where(Period.period_start_date >= start)
        if end is not None:
            query = query.where(Period.period_start_date <= end)

        result = await db.execute(query)
        return [
            {
                "period_start": period.period_start_date.isoformat(),
                "period_end": period.period_end_date.isoformat(),
                "value": period.value,
                "previous_value": period.previous_value,
                "growth_rate": period.growth_rate,
            }
            for period in result.scalars().all()
        ]

    @staticmethod
    async def get_time_based_analytics(
        db: AsyncSession, entity: EntityRef, days: int = 30, group_by: str = "day"
    ) -> dict[str, Any]:
        """Views per day, week or month computed from view rows."""
        start_date = utcnow() - timedelta(days=days)
        result = await db.execute(
            select(func.date(View.visited_at).label("date"), func.count(View.id).label("views"))
            .where(_entity_views(entity, start_date))
            .group_by(func.date(View.visited_at))
            .order_by(func.date(View.visited_at))
        )

        buckets: dict[str, int] = {}
        for day, views in result.all():
            day = day if isinstance(day, date) else date.fromisoformat(str(day))
            if group_by == "week":
                key = (day - timedelta(days=day.weekday())).isoformat()
            elif group_by == "month":
                key = day.strftime("%Y-%m")
            else:
                key = day.isoformat()
            buckets[key] = buckets.get(key, 0) + views

        return {
            "period_days": days,
            "group_by": group_by,
            "series": [{"period": key, "views": views} for key, views in buckets.items()],
        }

    @staticmethod
    async def get_engagement_scores(db: AsyncSession, entity: EntityRef) -> dict[str, Any]:
        """Derived scores of the entity's base row."""
        base = await AnalyticsService.get_base(db, entity)
        views = int(base.views_count or 0) if base else 0
        return {
            "entity_type": entity.entity_type,
            "entity_id": entity.entity_id,
            "engagement_score": engagement_score(base) if base else 0.0,
            "engagement_rate": engagement_rate(base) if base else 0.0,
            "popularity_score": popularity_score(base) if base else 0.0,
            "click_through_rate": click_through_rate(base) if base else 0.0,
            "views": views,
            "views_display": format_count(views),
        }

    @staticmethod
    async def get_top_entities(
        db: AsyncSession,
        entity_type: str,
        order_by: str = "trend_score",
        limit: int = 10,
    ) -> list[dict[str, Any]]:
        """Base rows of one entity type ranked by trend score or views."""
        column = Analytic.views_count if order_by == "views" else Analytic.trend_score
        result = await db.execute(
            select(Analytic)
            .where(Analytic.entity_type == entity_type, Analytic.base_clause())
            .order_by(column.desc(), Analytic.id)
            .limit(limit)
        )
        return [
            {
                "entity_id": row.entity_id,
                "views_count": row.views_count,
                "unique_viewers": row.unique_viewers,
                "trend_score": row.trend_score,
                "views_display": format_count(row.views_count or 0),
            }
            for row in result.scalars().all()
        ]


# Singleton instance
analytics_service = AnalyticsService()
