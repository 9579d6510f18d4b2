"""
Availability endpoint. Never cached: it reflects the store as of the request.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from table_booking.api.dependencies import get_booking_service
from table_booking.schemas.availability import AvailabilityResult
from table_booking.services.booking_service import BookingService

router = APIRouter(prefix="/availability", tags=["Availability"])


@router.get("", response_model=AvailabilityResult)
async def check_availability(
    booking_date: Optional[str] = Query(None, alias="date", description="YYYY-MM-DD"),
    booking_time: Optional[str] = Query(None, alias="time", description="HH:MM, restaurant local time"),
    guests: Optional[str] = Query(None, description="Party size"),
    service: BookingService = Depends(get_booking_service),
):
    """
    Candidate tables for the party plus the slot's overall utilization.

    All three parameters are required and follow the booking rules, so a
    400 lists every problem at once.
    """
    return await service.check_availability_request(
        {"date": booking_date, "time": booking_time, "guests": guests}
    )
