"""Constants package for the analytics engine."""

from .bots import BOT_SIGNATURES, GENERIC_BOT_PATTERN, BotCategory
from .metrics import (
    ADDITIVE_COUNTERS,
    COUNTER_FIELDS,
    ROLLUP_METRICS,
    Granularity,
    RecordStatus,
    RetentionKind,
    resolve_metric,
)

__all__ = [
    # Metric constants
    "ADDITIVE_COUNTERS",
    "COUNTER_FIELDS",
    "ROLLUP_METRICS",
    "Granularity",
    "RecordStatus",
    "RetentionKind",
    "resolve_metric",
    # Bot constants
    "BOT_SIGNATURES",
    "GENERIC_BOT_PATTERN",
    "BotCategory",
]
