"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter

from table_booking.api.routes import availability, bookings, overrides, reports, tables

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(bookings.router)
api_router.include_router(availability.router)
api_router.include_router(tables.router)
api_router.include_router(reports.router)
api_router.include_router(overrides.router)
