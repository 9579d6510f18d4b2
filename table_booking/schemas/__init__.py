from table_booking.schemas.availability import AvailabilityResult, SlotSummary
from table_booking.schemas.booking import (
    AvailabilityQuery,
    BookingCreate,
    BookingDraft,
    BookingListResponse,
    BookingRead,
    BookingResponse,
    BookingUpdate,
    DailySummary,
    TableUtilization,
)
from table_booking.schemas.override import OverrideCreate, OverrideRead
from table_booking.schemas.table import TableAvailabilityUpdate, TableCreate, TableRead

__all__ = [
    "AvailabilityResult", "SlotSummary",
    "AvailabilityQuery", "BookingCreate", "BookingDraft", "BookingListResponse", "BookingRead",
    "BookingResponse", "BookingUpdate", "DailySummary", "TableUtilization",
    "OverrideCreate", "OverrideRead",
    "TableAvailabilityUpdate", "TableCreate", "TableRead",
]
