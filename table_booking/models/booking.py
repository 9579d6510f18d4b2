"""
Booking model representing a guest's reservation of a table for a slot.

Key design decisions:
- A partial unique index on (table_id, booking_date, booking_time) over
  active statuses is what makes slot reservation atomic: a second active
  booking for the same table and slot fails on insert/update instead of
  silently double-booking.
- Cancellation is a status change; rows are only removed by admin delete.
"""

from enum import Enum

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    text,
)
from sqlalchemy.orm import relationship

from table_booking.db.base import Base, TimestampMixin


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"


# Statuses that hold a table for their slot
ACTIVE_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED})

_ACTIVE_PREDICATE = text("status IN ('pending', 'confirmed')")


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    table_id = Column(Integer, ForeignKey("tables.id", ondelete="SET NULL"), nullable=True)

    guest_name = Column(String(200), nullable=False)
    guest_email = Column(String(255), nullable=False, index=True)
    guest_phone = Column(String(20), nullable=False)

    booking_date = Column(Date, nullable=False, index=True)
    booking_time = Column(Time, nullable=False)
    party_size = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=BookingStatus.CONFIRMED.value, index=True)
    special_requests = Column(Text, nullable=True)

    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    table = relationship("DiningTable", back_populates="bookings")

    __table_args__ = (
        CheckConstraint("party_size > 0", name="check_booking_party_size_positive"),
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled', 'completed', 'no_show')",
            name="check_booking_status",
        ),
        Index(
            "uq_bookings_active_table_slot",
            "table_id",
            "booking_date",
            "booking_time",
            unique=True,
            postgresql_where=_ACTIVE_PREDICATE,
            sqlite_where=_ACTIVE_PREDICATE,
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, table={self.table_id}, "
            f"slot={self.booking_date} {self.booking_time}, status={self.status})>"
        )
