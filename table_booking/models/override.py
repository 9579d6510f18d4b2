"""
Per-date opening-hours override: a closed day or custom hours for one date.
"""

from sqlalchemy import Boolean, CheckConstraint, Column, Date, DateTime, Integer, String, Time

from table_booking.db.base import Base, utcnow


class AvailabilityOverride(Base):
    __tablename__ = "availability_overrides"

    id = Column(Integer, primary_key=True, index=True)
    override_date = Column(Date, unique=True, nullable=False)
    is_closed = Column(Boolean, nullable=False, default=False)
    custom_opening_time = Column(Time, nullable=True)
    custom_closing_time = Column(Time, nullable=True)
    reason = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint(
            "(custom_opening_time IS NULL) = (custom_closing_time IS NULL)",
            name="check_override_hours_paired",
        ),
    )

    def __repr__(self) -> str:
        return f"<AvailabilityOverride(date={self.override_date}, closed={self.is_closed})>"
