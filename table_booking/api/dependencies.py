"""
FastAPI dependencies.

The booking service is built once at startup (see main.lifespan) and kept on
app.state; tests swap it with `app.dependency_overrides`.
"""

from fastapi import Request

from table_booking.services.booking_service import BookingService


def get_booking_service(request: Request) -> BookingService:
    return request.app.state.booking_service
