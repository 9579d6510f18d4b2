"""
Booking store interface.

The store is the source of truth for conflict detection. Reads are
advisory; only `try_reserve` and `try_relocate` may claim a table slot, and
each does so as one atomic check-and-commit.

Implementations:
- InMemoryBookingStore: per-slot asyncio locks, for single-process use and tests
- SqlAlchemyBookingStore: partial unique index on active (table, date, time)
"""

from abc import ABC, abstractmethod
from datetime import date, time
from typing import Any, Iterable, Mapping, Optional

from table_booking.models.booking import BookingStatus
from table_booking.schemas.booking import BookingDraft, BookingRead
from table_booking.schemas.override import OverrideCreate, OverrideRead
from table_booking.schemas.table import TableCreate, TableRead


class BookingStore(ABC):
    @abstractmethod
    async def find_tables(self, *, min_capacity: int = 1, available_only: bool = True) -> list[TableRead]:
        """Tables with capacity >= min_capacity, optionally only those flagged available."""

    @abstractmethod
    async def active_bookings_for(self, booking_date: date, booking_time: time) -> list[BookingRead]:
        """Bookings holding a table at exactly this slot (status pending or confirmed)."""

    @abstractmethod
    async def try_reserve(
        self,
        table_id: int,
        booking_date: date,
        booking_time: time,
        draft: BookingDraft,
    ) -> BookingRead:
        """
        Create a booking on `table_id` for the slot, atomically.

        Raises:
            ConflictError: an active booking already holds (table_id, date, time)
        """

    @abstractmethod
    async def try_relocate(
        self,
        booking_id: int,
        table_id: int,
        booking_date: date,
        booking_time: time,
        changes: Mapping[str, Any],
        *,
        expected_status: Optional[BookingStatus] = None,
    ) -> BookingRead:
        """
        Move an existing booking to another table/slot, atomically.

        The old slot is released in the same step that claims the new one, so
        the booking is never left without a table.

        Raises:
            ConflictError: another active booking holds the target slot
            NotFound: unknown booking id
            ConcurrentModification: status no longer equals `expected_status`
        """

    @abstractmethod
    async def get_booking(self, booking_id: int) -> BookingRead:
        """Raises NotFound for unknown ids."""

    @abstractmethod
    async def update_booking_fields(
        self,
        booking_id: int,
        changes: Mapping[str, Any],
        *,
        expected_status: Optional[BookingStatus] = None,
    ) -> BookingRead:
        """
        Apply non-slot field changes.

        When `expected_status` is given the write only happens if the stored
        status still equals it (compare-and-set), else ConcurrentModification.
        Raises NotFound for unknown ids.
        """

    @abstractmethod
    async def delete_booking(self, booking_id: int) -> None:
        """Hard delete. Raises NotFound for unknown ids."""

    @abstractmethod
    async def list_bookings(
        self,
        *,
        booking_date: Optional[date] = None,
        status: Optional[BookingStatus] = None,
        from_date: Optional[date] = None,
    ) -> list[BookingRead]:
        """All bookings matching the filters, ordered by id. `from_date` keeps dates on or after it."""

    @abstractmethod
    async def add_tables(self, tables: Iterable[TableCreate]) -> list[TableRead]:
        """Register tables. Existing table numbers are left untouched."""

    @abstractmethod
    async def set_table_availability(self, table_id: int, is_available: bool) -> TableRead:
        """Toggle the administrative availability flag. Raises NotFound for unknown ids."""

    @abstractmethod
    async def set_override(self, override: OverrideCreate) -> OverrideRead:
        """Store the opening-hours override for its date, replacing any existing one."""

    @abstractmethod
    async def get_override(self, override_date: date) -> Optional[OverrideRead]:
        """The override for a date, or None when regular hours apply."""

    @abstractmethod
    async def list_overrides(self, *, from_date: Optional[date] = None) -> list[OverrideRead]:
        """Overrides ordered by date, optionally only those on or after `from_date`."""

    @abstractmethod
    async def delete_override(self, override_date: date) -> None:
        """Raises NotFound when the date has no override."""
