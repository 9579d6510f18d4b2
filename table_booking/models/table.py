"""
Dining table model.

Tables are created at setup time; only `is_available` changes afterwards
(an administratively disabled table is never offered to new bookings).
"""

from enum import Enum

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, String
from sqlalchemy.orm import relationship

from table_booking.db.base import Base, utcnow


class TableLocation(str, Enum):
    INDOOR = "indoor"
    OUTDOOR = "outdoor"
    TERRACE = "terrace"


class DiningTable(Base):
    __tablename__ = "tables"

    id = Column(Integer, primary_key=True, index=True)
    table_number = Column(String(10), unique=True, nullable=False)
    capacity = Column(Integer, nullable=False)
    location = Column(String(50), nullable=False, default=TableLocation.INDOOR.value)
    is_available = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    bookings = relationship("Booking", back_populates="table")

    __table_args__ = (
        CheckConstraint("capacity > 0", name="check_table_capacity_positive"),
        CheckConstraint(
            "location IN ('indoor', 'outdoor', 'terrace')",
            name="check_table_location",
        ),
    )

    def __repr__(self) -> str:
        return f"<DiningTable(id={self.id}, number={self.table_number}, capacity={self.capacity})>"
