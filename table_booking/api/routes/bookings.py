"""
Booking endpoints.

Request bodies are taken as plain JSON objects and handed to the validator,
which reports every violation at once instead of stopping at the first.
"""

from datetime import date
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Path, Query, status

from table_booking.api.dependencies import get_booking_service
from table_booking.models.booking import BookingStatus
from table_booking.schemas.booking import BookingListResponse, BookingResponse
from table_booking.services.booking_service import BookingService
from table_booking.services.cache_service import invalidate_report_cache

router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.get("", response_model=BookingListResponse)
async def list_bookings(
    booking_date: Optional[date] = Query(None, alias="date"),
    booking_status: Optional[BookingStatus] = Query(None, alias="status"),
    service: BookingService = Depends(get_booking_service),
):
    """List bookings, optionally filtered by date and status."""
    bookings = await service.list_bookings(booking_date=booking_date, status=booking_status)
    return BookingListResponse(data=bookings, count=len(bookings))


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: int = Path(..., ge=1),
    service: BookingService = Depends(get_booking_service),
):
    booking = await service.get_booking(booking_id)
    return BookingResponse(message="Booking found", data=booking)


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: dict[str, Any] = Body(...),
    service: BookingService = Depends(get_booking_service),
):
    """
    Book a table.

    The smallest free table that fits the party is assigned. If another
    request claims it first, the next candidate is tried; 400 is returned
    only when every fitting table is taken.
    """
    booking = await service.create_booking(payload)
    await invalidate_report_cache()
    return BookingResponse(message="Booking created successfully", data=booking)


@router.put("/{booking_id}", response_model=BookingResponse)
async def update_booking(
    booking_id: int = Path(..., ge=1),
    payload: dict[str, Any] = Body(...),
    service: BookingService = Depends(get_booking_service),
):
    """Update contact details, reschedule, or change status (transition rules apply)."""
    booking = await service.update_booking(booking_id, payload)
    await invalidate_report_cache()
    return BookingResponse(message="Booking updated", data=booking)


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: int = Path(..., ge=1),
    service: BookingService = Depends(get_booking_service),
):
    """Cancel a booking and release its table."""
    booking = await service.cancel_booking(booking_id)
    await invalidate_report_cache()
    return BookingResponse(message="Booking cancelled", data=booking)


@router.delete("/{booking_id}")
async def delete_booking(
    booking_id: int = Path(..., ge=1),
    service: BookingService = Depends(get_booking_service),
):
    """Remove a booking record entirely. Administrative cleanup only."""
    await service.delete_booking(booking_id)
    await invalidate_report_cache()
    return {"success": True, "message": "Booking deleted successfully"}
