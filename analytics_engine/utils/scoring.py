"""
Derived engagement metrics

All functions accept any object (ORM row or mapping) exposing the counter
names as attributes or keys.
"""

from collections.abc import Mapping
from typing import Any

from analytics_engine.config import settings
from analytics_engine.constants.metrics import REACTION_FIELDS

ENGAGEMENT_WEIGHT_FIELDS: dict[str, str] = {
    "views": "views_count",
    "likes": "likes_count",
    "shares": "shares_count",
    "clicks": "clicks_count",
    "replies": "replies_count",
    "follows": "follows_count",
    "bookmarks": "bookmarks_count",
}

POPULARITY_WEIGHTS: dict[str, float] = {
    "likes_count": 0.3,
    "shares_count": 0.25,
    "follows_count": 0.2,
    "replies_count": 0.15,
    "bookmarks_count": 0.1,
}

_COUNT_SUFFIXES = ((10**12, "T"), (10**9, "B"), (10**6, "M"), (10**3, "K"))


def _counter(source: Any, name: str) -> int:
    if isinstance(source, Mapping):
        value = source.get(name)
    else:
        value = getattr(source, name, None)
    return int(value or 0)


def click_through_rate(source: Any) -> float:
    """clicks / impressions * 100, rounded to 2 places; 0 without impressions."""
    impressions = _counter(source, "impressions_count")
    if impressions <= 0:
        return 0.0
    return round(_counter(source, "clicks_count") / impressions * 100, 2)


def engagement_score(source: Any, weights: Mapping[str, float] | None = None) -> float:
    """
    Weighted sum of views, likes, shares, clicks, replies, follows and bookmarks.

    Args:
        source: Counter holder
        weights: Per-key weights; missing keys use the configured defaults

    Returns:
        Score rounded to 2 decimal places
    """
    weights = weights or {}
    score = 0.0
    for key, field in ENGAGEMENT_WEIGHT_FIELDS.items():
        weight = weights[key] if key in weights else settings.engagement_weight(key)
        score += _counter(source, field) * weight
    return round(score, 2)


def engagement_rate(source: Any) -> float:
    """(likes + shares + replies) / impressions * 100."""
    impressions = _counter(source, "impressions_count")
    if impressions <= 0:
        return 0.0
    interactions = sum(_counter(source, name) for name in ("likes_count", "shares_count", "replies_count"))
    return round(interactions / impressions * 100, 2)


def popularity_score(source: Any) -> float:
    return round(sum(_counter(source, name) * weight for name, weight in POPULARITY_WEIGHTS.items()), 2)


def reaction_count(source: Any) -> int:
    return sum(_counter(source, name) for name in REACTION_FIELDS)


def format_count(value: int) -> str:
    """Compact display form: 1500 -> '1.50K', 2300000 -> '2.30M'."""
    for threshold, suffix in _COUNT_SUFFIXES:
        if value >= threshold:
            return f"{value / threshold:,.2f}{suffix}"
    return str(value)


def growth_rate(current: int, previous: int | None) -> float | None:
    """Percent change from ``previous``; None unless ``previous`` is positive."""
    if not previous or previous <= 0:
        return None
    return round((current - previous) / previous * 100, 2)
