"""
Reporting endpoints with Redis caching.
"""

from datetime import date

from fastapi import APIRouter, Depends, Query

from table_booking.api.dependencies import get_booking_service
from table_booking.core.logging import get_logger
from table_booking.schemas.booking import DailySummary, TableUtilization
from table_booking.services.booking_service import BookingService
from table_booking.services.cache_service import get_cached_report, set_cached_report

logger = get_logger(__name__)
router = APIRouter(prefix="/reports", tags=["Reports"])


@router.get("/daily", response_model=DailySummary)
async def daily_report(
    booking_date: date = Query(..., alias="date"),
    service: BookingService = Depends(get_booking_service),
):
    """
    Bookings, guests, confirmations and cancellations for one day.
    Cached until the next booking write or the TTL expires.
    """
    cached = await get_cached_report(booking_date)
    if cached:
        logger.info("daily_report_cache_hit", date=str(booking_date))
        return DailySummary(**cached)

    summary = await service.daily_summary(booking_date)
    await set_cached_report(booking_date, summary.model_dump(mode="json"))
    return summary


@router.get("/utilization", response_model=list[TableUtilization])
async def table_utilization(
    days: int = Query(30, ge=1, le=365),
    service: BookingService = Depends(get_booking_service),
):
    """Bookings and average party size per table for dates from `days` days ago onwards, busiest first."""
    return await service.table_utilization(days)
