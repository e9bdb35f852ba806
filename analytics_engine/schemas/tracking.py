from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class TrackRequest(BaseModel):
    entity_type: str = Field(..., min_length=1, max_length=100, description="Type of the viewed entity.")
    entity_id: str = Field(..., min_length=1, max_length=64, description="Identifier of the viewed entity.")
    action: str = Field("view", max_length=50, description="Tracked action, e.g. show or view.")
    path: Optional[str] = Field(None, max_length=2048, description="Path of the viewed page.")
    url: Optional[str] = Field(None, description="Full URL of the viewed page.")
    referer: Optional[str] = Field(None, description="Referer of the viewed page.")

    class Config:
        json_schema_extra = {
            "example": {
                "entity_type": "article",
                "entity_id": "42",
                "action": "show",
                "path": "/articles/42",
            }
        }


class MetricRequest(BaseModel):
    entity_type: str = Field(..., min_length=1, max_length=100)
    entity_id: str = Field(..., min_length=1, max_length=64)
    metric: str = Field(..., description="Counter alias (like, share, click, ...) or column name.")
    amount: int = Field(1, ge=1, le=1000)
    remove: bool = Field(False, description="Decrement instead of increment (unlike, unfollow, ...).")


class TrackResponse(BaseModel):
    tracked: bool
    entity_type: str
    entity_id: str
    views_count: Optional[int] = None
    unique_viewers: Optional[int] = None
    last_activity_at: Optional[datetime] = None


class MetricResponse(BaseModel):
    updated: bool
    entity_type: str
    entity_id: str
    metric: str
    value: Optional[int] = None
