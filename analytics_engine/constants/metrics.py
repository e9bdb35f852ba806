"""
Metric Constants

Counter column names, rollup granularities and the short metric aliases
accepted by the tracking API.
"""

from enum import Enum


class Granularity(str, Enum):
    """Time bucket sizes for period rollups."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class RetentionKind(str, Enum):
    """Record families the retention sweeper can purge."""

    VIEWS = "views"
    ANALYTICS = "analytics"
    PERIODS = "periods"


class RecordStatus(str, Enum):
    """Moderation state of analytics, view and period rows. Rejected rows are left out of totals."""

    ACTIVE = "active"
    APPROVED = "approved"
    REJECTED = "rejected"


# Counters summed into the base row. unique_viewers is derived separately.
ADDITIVE_COUNTERS: tuple[str, ...] = (
    "views_count",
    "user_views",
    "public_views",
    "bot_views",
    "human_views",
    "impressions_count",
    "likes_count",
    "shares_count",
    "votes_count",
    "follows_count",
    "replies_count",
    "complaints_count",
    "bookmarks_count",
    "clicks_count",
    "comments_count",
    "messages_count",
    "chats_count",
    "contacts_count",
    "wishlists_count",
    "listings_count",
    "subscriptions_count",
    "users_count",
    "sellers_count",
    "cartitems_count",
    "checkouts_count",
    "payments_count",
    "orders_count",
    "brands_count",
    "shops_count",
    "articles_count",
    "posts_count",
    "video_count",
)

COUNTER_FIELDS: tuple[str, ...] = ADDITIVE_COUNTERS + ("unique_viewers",)

# Metrics rolled up into periods whenever the base row is rebuilt
ROLLUP_METRICS: tuple[str, ...] = (
    "views_count",
    "likes_count",
    "shares_count",
    "clicks_count",
    "impressions_count",
    "unique_viewers",
)

# Per-actor contributions that make a viewer a contributor
CONTRIBUTION_FIELDS: tuple[str, ...] = (
    "likes_count",
    "shares_count",
    "comments_count",
    "replies_count",
    "votes_count",
)

REACTION_FIELDS: tuple[str, ...] = ("likes_count", "replies_count", "votes_count", "shares_count")

# Short names used by the metric tracking endpoint
METRIC_ALIASES: dict[str, str] = {
    "like": "likes_count",
    "share": "shares_count",
    "click": "clicks_count",
    "impression": "impressions_count",
    "follow": "follows_count",
    "bookmark": "bookmarks_count",
    "reply": "replies_count",
    "vote": "votes_count",
    "complaint": "complaints_count",
    "comment": "comments_count",
    "message": "messages_count",
    "chat": "chats_count",
    "contact": "contacts_count",
    "wishlist": "wishlists_count",
    "subscription": "subscriptions_count",
    "order": "orders_count",
    "payment": "payments_count",
    "checkout": "checkouts_count",
    "cartitem": "cartitems_count",
}

# Counters the metric endpoint may touch; view counters are owned by track()
ENGAGEMENT_COUNTERS: frozenset[str] = frozenset(
    name for name in ADDITIVE_COUNTERS if name not in ("views_count", "user_views", "public_views", "bot_views", "human_views")
)

# Growth thresholds (percent) for trending/declining period queries
TRENDING_GROWTH_THRESHOLD = 10.0
DECLINING_GROWTH_THRESHOLD = -5.0


def resolve_metric(name: str) -> str | None:
    """Map an alias or a counter column name to a counter column, or None."""
    if name in METRIC_ALIASES:
        return METRIC_ALIASES[name]
    if name in COUNTER_FIELDS:
        return name
    return None
