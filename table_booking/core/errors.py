"""
Domain errors raised by the booking core.

The HTTP layer maps these onto status codes; services never raise
HTTPException themselves.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from table_booking.services.validator import Violation


class BookingError(Exception):
    """Base class for every error the booking core raises."""


class ValidationFailure(BookingError):
    """One or more validation rules failed. Carries every violation, in order."""

    def __init__(self, violations: Sequence["Violation"]):
        self.violations = list(violations)
        codes = ", ".join(v.code.value for v in self.violations)
        super().__init__(f"Invalid booking request: {codes}")


class NoAvailability(BookingError):
    """No table satisfies the capacity and slot constraints."""


class NotFound(BookingError):
    """Unknown booking or table id."""


class InvalidTransition(BookingError):
    """Illegal booking status change."""


class ConflictError(BookingError):
    """
    An active booking already holds the (table, date, time) slot.

    Raised by stores from their atomic reservation operations and always
    handled inside the booking service.
    """


class StoreError(BookingError):
    """Unexpected storage failure. Fatal to the request, never retried."""


class ConcurrentModification(BookingError):
    """The booking's status changed between read and write; the caller may re-read and retry."""
