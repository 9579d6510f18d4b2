"""
Pydantic schemas for availability queries.
"""

from datetime import date, time

from pydantic import BaseModel

from table_booking.schemas.table import TableRead


class SlotSummary(BaseModel):
    booking_date: date
    booking_time: time
    total_tables: int
    occupied_tables: int
    available_tables: int
    is_available: bool
    is_closed: bool = False


class AvailabilityResult(BaseModel):
    party_size: int
    candidate_tables: list[TableRead]
    slot_summary: SlotSummary
