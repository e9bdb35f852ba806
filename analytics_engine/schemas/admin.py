from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field

from analytics_engine.constants.metrics import Granularity


class RetentionRequest(BaseModel):
    """Per-kind retention overrides; omitted kinds use the configured days."""

    views_days: Optional[int] = Field(None, ge=1)
    analytics_days: Optional[int] = Field(None, ge=1)
    periods_days: Optional[int] = Field(None, ge=1)

    def overrides(self) -> dict[str, int]:
        values = {"views": self.views_days, "analytics": self.analytics_days, "periods": self.periods_days}
        return {kind: days for kind, days in values.items() if days is not None}


class BackfillRequest(BaseModel):
    entity_type: str = Field(..., min_length=1, max_length=100)
    entity_id: str = Field(..., min_length=1, max_length=64)
    metric: str = "views_count"
    granularity: Granularity = Granularity.DAILY
    since: date
    until: Optional[date] = None


class RebuildResponse(BaseModel):
    scope: str
    rebuilt: int


class RetentionResponse(BaseModel):
    deleted: dict[str, int]


class PeriodOut(BaseModel):
    analytic_id: int
    metric: str
    granularity: str
    period_start_date: date
    period_end_date: date
    value: int
    previous_value: Optional[int] = None
    growth_rate: Optional[float] = None

    class Config:
        from_attributes = True


class AnalyticRecordOut(BaseModel):
    """One analytic row with its moderation state."""

    id: int
    entity_type: str
    entity_id: str
    user_id: Optional[str] = None
    visitor_token: Optional[str] = None
    views_count: int
    likes_count: int
    analytics_status: str
    analytics_lock: bool
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    restored_at: Optional[datetime] = None
    restored_by: Optional[str] = None
    updated_by: Optional[str] = None

    class Config:
        from_attributes = True
