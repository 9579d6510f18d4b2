"""
Opening-hours override endpoints: close a date or change its hours.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query

from table_booking.api.dependencies import get_booking_service
from table_booking.schemas.override import OverrideCreate, OverrideRead
from table_booking.services.booking_service import BookingService

router = APIRouter(prefix="/overrides", tags=["Opening hours"])


@router.get("", response_model=list[OverrideRead])
async def list_overrides(
    from_date: Optional[date] = Query(None),
    service: BookingService = Depends(get_booking_service),
):
    return await service.list_overrides(from_date=from_date)


@router.put("", response_model=OverrideRead)
async def set_override(
    override: OverrideCreate,
    service: BookingService = Depends(get_booking_service),
):
    """
    Close the restaurant or set custom hours for one date.

    Existing bookings on that date are kept; only new bookings, reschedules
    and availability checks see the override.
    """
    return await service.set_override(override)


@router.delete("/{override_date}")
async def remove_override(
    override_date: date = Path(...),
    service: BookingService = Depends(get_booking_service),
):
    await service.remove_override(override_date)
    return {"success": True, "message": "Override removed"}
