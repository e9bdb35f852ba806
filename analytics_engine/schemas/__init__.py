from .admin import BackfillRequest, PeriodOut, RebuildResponse, RetentionRequest, RetentionResponse
from .tracking import MetricRequest, MetricResponse, TrackRequest, TrackResponse

# Define the public API of this module
__all__ = [
    "TrackRequest",
    "TrackResponse",
    "MetricRequest",
    "MetricResponse",
    "RetentionRequest",
    "RetentionResponse",
    "BackfillRequest",
    "RebuildResponse",
    "PeriodOut",
]
