"""Per-actor and base engagement counters for trackable entities."""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    and_,
    or_,
    text,
)
from sqlalchemy.orm import relationship

from analytics_engine.constants.metrics import RecordStatus
from analytics_engine.database import Base
from analytics_engine.utils.dates import utcnow


class Analytic(Base):
    """
    One row per (entity, actor) plus a single base row per entity.

    The base row has neither ``user_id`` nor ``visitor_token``; its counters
    are recomputed from the per-actor rows, never incremented directly.
    """

    __tablename__ = "analytics"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    entity_type = Column(String(100), nullable=False)
    entity_id = Column(String(64), nullable=False)

    user_id = Column(String(64), nullable=True)
    visitor_token = Column(String(128), nullable=True)
    session_id = Column(String(128), nullable=True)
    ip_address = Column(String(45), nullable=True)
    action_type = Column(String(50), nullable=True)
    request_path = Column(String(2048), nullable=True)

    # View counters
    views_count = Column(Integer, default=0, nullable=False)
    unique_viewers = Column(Integer, default=0, nullable=False)
    user_views = Column(Integer, default=0, nullable=False)
    public_views = Column(Integer, default=0, nullable=False)
    bot_views = Column(Integer, default=0, nullable=False)
    human_views = Column(Integer, default=0, nullable=False)
    impressions_count = Column(Integer, default=0, nullable=False)

    # Engagement counters
    likes_count = Column(Integer, default=0, nullable=False)
    shares_count = Column(Integer, default=0, nullable=False)
    votes_count = Column(Integer, default=0, nullable=False)
    follows_count = Column(Integer, default=0, nullable=False)
    replies_count = Column(Integer, default=0, nullable=False)
    complaints_count = Column(Integer, default=0, nullable=False)
    bookmarks_count = Column(Integer, default=0, nullable=False)
    clicks_count = Column(Integer, default=0, nullable=False)
    comments_count = Column(Integer, default=0, nullable=False)

    # Domain counters
    messages_count = Column(Integer, default=0, nullable=False)
    chats_count = Column(Integer, default=0, nullable=False)
    contacts_count = Column(Integer, default=0, nullable=False)
    wishlists_count = Column(Integer, default=0, nullable=False)
    listings_count = Column(Integer, default=0, nullable=False)
    subscriptions_count = Column(Integer, default=0, nullable=False)
    users_count = Column(Integer, default=0, nullable=False)
    sellers_count = Column(Integer, default=0, nullable=False)
    cartitems_count = Column(Integer, default=0, nullable=False)
    checkouts_count = Column(Integer, default=0, nullable=False)
    payments_count = Column(Integer, default=0, nullable=False)
    orders_count = Column(Integer, default=0, nullable=False)
    brands_count = Column(Integer, default=0, nullable=False)
    shops_count = Column(Integer, default=0, nullable=False)
    articles_count = Column(Integer, default=0, nullable=False)
    posts_count = Column(Integer, default=0, nullable=False)
    video_count = Column(Integer, default=0, nullable=False)

    # Derived metrics
    click_through_rate = Column(Float, default=0.0, nullable=False)
    trend_score = Column(Float, default=0.0, nullable=False)
    reaction_counts = Column(Integer, default=0, nullable=False)
    contributors_count = Column(Integer, default=0, nullable=False)

    # Locked rows refuse counter changes; rejected rows are left out of totals
    analytics_status = Column(String(20), default=RecordStatus.ACTIVE.value, nullable=False)
    analytics_lock = Column(Boolean, default=False, nullable=False)

    # Audit
    created_by = Column(String(64), nullable=True)
    updated_by = Column(String(64), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    approved_by = Column(String(64), nullable=True)
    rejected_at = Column(DateTime, nullable=True)
    rejected_by = Column(String(64), nullable=True)
    restored_at = Column(DateTime, nullable=True)
    restored_by = Column(String(64), nullable=True)

    last_activity_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships (children are removed with explicit deletes, see RetentionSweeper)
    views = relationship("View", back_populates="analytic", passive_deletes=True, lazy="raise")
    periods = relationship("Period", back_populates="analytic", passive_deletes=True, lazy="raise")

    __table_args__ = (
        Index(
            "uq_analytics_entity_user",
            "entity_type",
            "entity_id",
            "user_id",
            unique=True,
            sqlite_where=text("user_id IS NOT NULL"),
            postgresql_where=text("user_id IS NOT NULL"),
        ),
        Index(
            "uq_analytics_entity_visitor",
            "entity_type",
            "entity_id",
            "visitor_token",
            unique=True,
            sqlite_where=text("visitor_token IS NOT NULL"),
            postgresql_where=text("visitor_token IS NOT NULL"),
        ),
        Index(
            "uq_analytics_entity_base",
            "entity_type",
            "entity_id",
            unique=True,
            sqlite_where=text("user_id IS NULL AND visitor_token IS NULL"),
            postgresql_where=text("user_id IS NULL AND visitor_token IS NULL"),
        ),
        Index("idx_analytics_entity", "entity_type", "entity_id"),
        Index("idx_analytics_last_activity", "last_activity_at"),
        Index("idx_analytics_created", "created_at"),
    )

    @property
    def is_base(self) -> bool:
        return self.user_id is None and self.visitor_token is None

    @property
    def is_active(self) -> bool:
        return self.analytics_status != RecordStatus.REJECTED.value

    @property
    def is_locked(self) -> bool:
        return bool(self.analytics_lock)

    @classmethod
    def base_clause(cls):
        """SQL condition selecting the base row."""
        return and_(cls.user_id.is_(None), cls.visitor_token.is_(None))

    @classmethod
    def per_actor_clause(cls):
        """SQL condition selecting per-actor rows."""
        return or_(cls.user_id.is_not(None), cls.visitor_token.is_not(None))

    @classmethod
    def counted_clause(cls):
        """SQL condition selecting rows that count towards totals."""
        return cls.analytics_status != RecordStatus.REJECTED.value

    def __repr__(self):
        actor = self.user_id or self.visitor_token or "base"
        return f"<Analytic {self.entity_type}:{self.entity_id} actor={actor} views={self.views_count}>"
