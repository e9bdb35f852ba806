"""Time-bucketed metric values with growth against the previous bucket."""

from sqlalchemy import Boolean, Column, Date, DateTime, Float, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from analytics_engine.constants.metrics import RecordStatus
from analytics_engine.database import Base
from analytics_engine.utils.dates import utcnow


class Period(Base):
    __tablename__ = "periods"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    analytic_id = Column(Integer, ForeignKey("analytics.id", ondelete="CASCADE"), nullable=False)
    metric = Column(String(50), nullable=False)
    granularity = Column(String(10), nullable=False)
    period_start_date = Column(Date, nullable=False)
    period_end_date = Column(Date, nullable=False)

    value = Column(Integer, default=0, nullable=False)
    previous_value = Column(Integer, default=0, nullable=True)
    # NULL means no comparable earlier bucket
    growth_rate = Column(Float, nullable=True)

    period_status = Column(String(20), default=RecordStatus.ACTIVE.value, nullable=False)
    # A locked bucket keeps its value
    period_lock = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    analytic = relationship("Analytic", back_populates="periods", lazy="raise")

    __table_args__ = (
        UniqueConstraint(
            "analytic_id", "metric", "granularity", "period_start_date", name="uq_period_bucket"
        ),
        Index("idx_periods_lookup", "analytic_id", "metric", "granularity", "period_start_date"),
        Index("idx_periods_created", "created_at"),
    )

    def __repr__(self):
        return (
            f"<Period analytic={self.analytic_id} {self.metric} {self.granularity} "
            f"{self.period_start_date} value={self.value} growth={self.growth_rate}>"
        )
