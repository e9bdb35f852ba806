"""
Date helpers

Timestamps are stored as naive UTC datetimes. Period buckets are calendar
dates; weeks start on Monday.
"""

import calendar
from datetime import date, datetime, timedelta, timezone

from analytics_engine.constants.metrics import Granularity


def utcnow() -> datetime:
    """Current UTC time without tzinfo, matching the stored columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def period_bounds(as_of: date | datetime, granularity: Granularity | str) -> tuple[date, date]:
    """
    Inclusive start and end dates of the bucket containing ``as_of``.

    Args:
        as_of: Any instant or date inside the bucket
        granularity: daily, weekly, monthly or yearly

    Returns:
        (period_start_date, period_end_date)
    """
    day = as_of.date() if isinstance(as_of, datetime) else as_of
    granularity = Granularity(granularity)

    if granularity is Granularity.DAILY:
        return day, day
    if granularity is Granularity.WEEKLY:
        start = day - timedelta(days=day.weekday())
        return start, start + timedelta(days=6)
    if granularity is Granularity.MONTHLY:
        last_day = calendar.monthrange(day.year, day.month)[1]
        return day.replace(day=1), day.replace(day=last_day)
    return date(day.year, 1, 1), date(day.year, 12, 31)


def iter_period_starts(since: date, until: date, granularity: Granularity | str) -> list[date]:
    """Bucket start dates covering ``since``..``until`` inclusive, oldest first."""
    starts = []
    current, _ = period_bounds(since, granularity)
    while current <= until:
        starts.append(current)
        _, end = period_bounds(current, granularity)
        current = end + timedelta(days=1)
    return starts
