from table_booking.models.booking import ACTIVE_STATUSES, Booking, BookingStatus
from table_booking.models.override import AvailabilityOverride
from table_booking.models.table import DiningTable, TableLocation

__all__ = [
    "ACTIVE_STATUSES", "AvailabilityOverride", "Booking", "BookingStatus", "DiningTable", "TableLocation",
]
