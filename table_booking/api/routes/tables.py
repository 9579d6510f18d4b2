"""
Table administration endpoints.
"""

from fastapi import APIRouter, Depends, Path, Query

from table_booking.api.dependencies import get_booking_service
from table_booking.schemas.table import TableAvailabilityUpdate, TableRead
from table_booking.services.booking_service import BookingService

router = APIRouter(prefix="/tables", tags=["Tables"])


@router.get("", response_model=list[TableRead])
async def list_tables(
    available_only: bool = Query(False),
    service: BookingService = Depends(get_booking_service),
):
    return await service.list_tables(available_only=available_only)


@router.patch("/{table_id}", response_model=TableRead)
async def set_table_availability(
    update: TableAvailabilityUpdate,
    table_id: int = Path(..., ge=1),
    service: BookingService = Depends(get_booking_service),
):
    """Take a table out of service (or back in). Existing bookings are kept."""
    return await service.set_table_availability(table_id, update.is_available)
