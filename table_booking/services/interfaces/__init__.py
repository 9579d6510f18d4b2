"""
Service interfaces for dependency inversion.
Lets the booking service run against any storage backend.
"""

from .booking_store import BookingStore

__all__ = ['BookingStore']
