"""Deduplicated page/view events for analytics."""

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import relationship

from analytics_engine.constants.metrics import RecordStatus
from analytics_engine.database import Base
from analytics_engine.utils.dates import utcnow


class View(Base):
    """
    One row per (entity, actor, action_type, request_path).

    Repeat visits update ``visited_at`` and the request snapshot in place.
    """

    __tablename__ = "views"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    analytic_id = Column(Integer, ForeignKey("analytics.id", ondelete="CASCADE"), nullable=True)
    entity_type = Column(String(100), nullable=False)
    entity_id = Column(String(64), nullable=False)
    action_type = Column(String(50), nullable=False)
    request_path = Column(String(2048), nullable=False, default="")

    user_id = Column(String(64), nullable=True)
    visitor_token = Column(String(128), nullable=True)
    session_id = Column(String(128), nullable=True)
    ip_address = Column(String(45), nullable=True)

    # Request snapshot
    method = Column(String(10), nullable=True)
    url = Column(Text, nullable=True)
    referer = Column(Text, nullable=True)
    page_url = Column(Text, nullable=True)
    languages = Column(String(255), nullable=True)
    useragent = Column(Text, nullable=True)
    headers = Column(JSON, nullable=True)

    # Device snapshot
    device = Column(String(50), nullable=True)
    device_type = Column(String(50), nullable=True)
    platform = Column(String(100), nullable=True)
    os = Column(String(100), nullable=True)
    browser = Column(String(100), nullable=True)
    browser_version = Column(String(50), nullable=True)
    is_robot = Column(Boolean, default=False, nullable=False)
    robot_name = Column(String(100), nullable=True)
    robot_category = Column(String(50), nullable=True)

    # Geolocation snapshot
    country = Column(String(100), nullable=True)
    country_code = Column(String(10), nullable=True)
    region = Column(String(100), nullable=True)
    region_name = Column(String(100), nullable=True)
    city = Column(String(100), nullable=True)
    zip = Column(String(20), nullable=True)
    lat = Column(Float, nullable=True)
    lon = Column(Float, nullable=True)
    timezone = Column(String(64), nullable=True)
    isp = Column(String(255), nullable=True)
    org = Column(String(255), nullable=True)
    as_name = Column(String(255), nullable=True)

    # Follow the owning analytic row, see AnalyticModerationService
    view_status = Column(String(20), default=RecordStatus.ACTIVE.value, nullable=False)
    view_lock = Column(Boolean, default=False, nullable=False)

    created_by = Column(String(64), nullable=True)
    updated_by = Column(String(64), nullable=True)

    visited_at = Column(DateTime, default=utcnow, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    analytic = relationship("Analytic", back_populates="views", lazy="raise")

    __table_args__ = (
        Index(
            "uq_views_user",
            "entity_type",
            "entity_id",
            "action_type",
            "request_path",
            "user_id",
            unique=True,
            sqlite_where=text("user_id IS NOT NULL"),
            postgresql_where=text("user_id IS NOT NULL"),
        ),
        Index(
            "uq_views_visitor",
            "entity_type",
            "entity_id",
            "action_type",
            "request_path",
            "visitor_token",
            unique=True,
            sqlite_where=text("visitor_token IS NOT NULL"),
            postgresql_where=text("visitor_token IS NOT NULL"),
        ),
        Index("idx_views_entity_visited", "entity_type", "entity_id", "visited_at"),
        Index("idx_views_created", "created_at"),
    )

    @property
    def has_geolocation(self) -> bool:
        return bool(self.country) and bool(self.country_code) and self.country_code != "XX"

    @classmethod
    def counted_clause(cls):
        return cls.view_status != RecordStatus.REJECTED.value

    def __repr__(self):
        return f"<View {self.entity_type}:{self.entity_id} action={self.action_type} path={self.request_path}>"
