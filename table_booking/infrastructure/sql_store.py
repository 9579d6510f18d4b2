"""
SQLAlchemy-backed booking store.

CONCURRENCY STRATEGY: unique index as the arbiter
==================================================

Problem:
  Two requests for the same table and slot both read "free" and both insert.
  Result: a double-booked table.

Solution:
  `bookings` carries a partial unique index on (table_id, booking_date,
  booking_time) restricted to active statuses. Reserving a slot is a plain
  INSERT (or, for relocation, a single-row UPDATE); the database rejects the
  loser of any race with an IntegrityError, which we surface as
  ConflictError so the booking service can try the next candidate table.

  - No SELECT FOR UPDATE over the tables list, no global lock
  - Cancelling flips the status out of the index predicate, freeing the slot
  - Each operation runs in its own short transaction
"""

from contextlib import contextmanager
from datetime import date, time
from enum import Enum
from typing import Any, Iterable, Iterator, Mapping, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from table_booking.core.errors import ConcurrentModification, ConflictError, NotFound, StoreError
from table_booking.core.logging import get_logger
from table_booking.models.booking import ACTIVE_STATUSES, Booking, BookingStatus
from table_booking.models.override import AvailabilityOverride
from table_booking.models.table import DiningTable
from table_booking.schemas.booking import BookingDraft, BookingRead
from table_booking.schemas.override import OverrideCreate, OverrideRead
from table_booking.schemas.table import TableCreate, TableRead
from table_booking.services.interfaces.booking_store import BookingStore

logger = get_logger(__name__)

_ACTIVE_VALUES = sorted(s.value for s in ACTIVE_STATUSES)


@contextmanager
def _store_errors(conflict_message: Optional[str] = None) -> Iterator[None]:
    """Translate driver errors into domain errors."""
    try:
        yield
    except IntegrityError as e:
        if conflict_message is None:
            logger.error("store_integrity_error", error=str(e.orig))
            raise StoreError("Storage constraint violated") from e
        raise ConflictError(conflict_message) from e
    except SQLAlchemyError as e:
        logger.error("store_error", error=str(e))
        raise StoreError("Storage unavailable") from e


def _column_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _check_status(booking: Booking, expected_status: Optional[BookingStatus]) -> None:
    if expected_status is not None and booking.status != expected_status.value:
        raise ConcurrentModification(
            f"Booking {booking.id} is {booking.status}, expected {expected_status.value}"
        )


class SqlAlchemyBookingStore(BookingStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._sessions = session_factory

    # Tables

    async def find_tables(self, *, min_capacity: int = 1, available_only: bool = True) -> list[TableRead]:
        stmt = select(DiningTable).where(DiningTable.capacity >= min_capacity).order_by(DiningTable.id)
        if available_only:
            stmt = stmt.where(DiningTable.is_available.is_(True))
        with _store_errors():
            async with self._sessions() as session:
                result = await session.execute(stmt)
                return [TableRead.model_validate(t) for t in result.scalars().all()]

    async def add_tables(self, tables: Iterable[TableCreate]) -> list[TableRead]:
        with _store_errors():
            async with self._sessions.begin() as session:
                existing = set((await session.execute(select(DiningTable.table_number))).scalars().all())
                added = []
                for new_table in tables:
                    if new_table.table_number in existing:
                        continue
                    table = DiningTable(
                        table_number=new_table.table_number,
                        capacity=new_table.capacity,
                        location=new_table.location.value,
                        is_available=new_table.is_available,
                    )
                    session.add(table)
                    existing.add(new_table.table_number)
                    added.append(table)
                await session.flush()
                return [TableRead.model_validate(t) for t in added]

    async def set_table_availability(self, table_id: int, is_available: bool) -> TableRead:
        with _store_errors():
            async with self._sessions.begin() as session:
                table = await session.get(DiningTable, table_id)
                if table is None:
                    raise NotFound(f"Table {table_id} not found")
                table.is_available = is_available
                await session.flush()
                return TableRead.model_validate(table)

    # Bookings

    async def active_bookings_for(self, booking_date: date, booking_time: time) -> list[BookingRead]:
        stmt = (
            select(Booking)
            .where(
                Booking.booking_date == booking_date,
                Booking.booking_time == booking_time,
                Booking.status.in_(_ACTIVE_VALUES),
            )
            .order_by(Booking.id)
        )
        with _store_errors():
            async with self._sessions() as session:
                result = await session.execute(stmt)
                return [BookingRead.model_validate(b) for b in result.scalars().all()]

    async def try_reserve(
        self,
        table_id: int,
        booking_date: date,
        booking_time: time,
        draft: BookingDraft,
    ) -> BookingRead:
        conflict = f"Table {table_id} is already booked for {booking_date} {booking_time}"
        with _store_errors(conflict):
            async with self._sessions.begin() as session:
                booking = Booking(
                    table_id=table_id,
                    booking_date=booking_date,
                    booking_time=booking_time,
                    party_size=draft.party_size,
                    guest_name=draft.guest_name,
                    guest_email=draft.guest_email,
                    guest_phone=draft.guest_phone,
                    special_requests=draft.special_requests,
                    status=draft.status.value,
                )
                session.add(booking)
                await session.flush()
                await session.refresh(booking)
                return BookingRead.model_validate(booking)

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
        conflict = f"Table {table_id} is already booked for {booking_date} {booking_time}"
        with _store_errors(conflict):
            async with self._sessions.begin() as session:
                booking = await session.get(Booking, booking_id, with_for_update=True)
                if booking is None:
                    raise NotFound(f"Booking {booking_id} not found")
                _check_status(booking, expected_status)
                for key, value in changes.items():
                    setattr(booking, key, _column_value(value))
                # One UPDATE: the old slot is released as the new one is claimed
                booking.table_id = table_id
                booking.booking_date = booking_date
                booking.booking_time = booking_time
                await session.flush()
                await session.refresh(booking)
                return BookingRead.model_validate(booking)

    async def get_booking(self, booking_id: int) -> BookingRead:
        with _store_errors():
            async with self._sessions() as session:
                booking = await session.get(Booking, booking_id)
                if booking is None:
                    raise NotFound(f"Booking {booking_id} not found")
                return BookingRead.model_validate(booking)

    async def update_booking_fields(
        self,
        booking_id: int,
        changes: Mapping[str, Any],
        *,
        expected_status: Optional[BookingStatus] = None,
    ) -> BookingRead:
        with _store_errors():
            async with self._sessions.begin() as session:
                booking = await session.get(Booking, booking_id, with_for_update=True)
                if booking is None:
                    raise NotFound(f"Booking {booking_id} not found")
                _check_status(booking, expected_status)
                for key, value in changes.items():
                    setattr(booking, key, _column_value(value))
                await session.flush()
                await session.refresh(booking)
                return BookingRead.model_validate(booking)

    async def delete_booking(self, booking_id: int) -> None:
        with _store_errors():
            async with self._sessions.begin() as session:
                booking = await session.get(Booking, booking_id)
                if booking is None:
                    raise NotFound(f"Booking {booking_id} not found")
                await session.delete(booking)

    async def list_bookings(
        self,
        *,
        booking_date: Optional[date] = None,
        status: Optional[BookingStatus] = None,
        from_date: Optional[date] = None,
    ) -> list[BookingRead]:
        stmt = select(Booking).order_by(Booking.id)
        if booking_date is not None:
            stmt = stmt.where(Booking.booking_date == booking_date)
        if from_date is not None:
            stmt = stmt.where(Booking.booking_date >= from_date)
        if status is not None:
            stmt = stmt.where(Booking.status == status.value)
        with _store_errors():
            async with self._sessions() as session:
                result = await session.execute(stmt)
                return [BookingRead.model_validate(b) for b in result.scalars().all()]

    # Opening-hours overrides

    async def set_override(self, override: OverrideCreate) -> OverrideRead:
        stmt = select(AvailabilityOverride).where(AvailabilityOverride.override_date == override.override_date)
        with _store_errors():
            async with self._sessions.begin() as session:
                row = (await session.execute(stmt.with_for_update())).scalar_one_or_none()
                if row is None:
                    row = AvailabilityOverride(override_date=override.override_date)
                    session.add(row)
                row.is_closed = override.is_closed
                row.custom_opening_time = override.custom_opening_time
                row.custom_closing_time = override.custom_closing_time
                row.reason = override.reason
                await session.flush()
                await session.refresh(row)
                return OverrideRead.model_validate(row)

    async def get_override(self, override_date: date) -> Optional[OverrideRead]:
        stmt = select(AvailabilityOverride).where(AvailabilityOverride.override_date == override_date)
        with _store_errors():
            async with self._sessions() as session:
                row = (await session.execute(stmt)).scalar_one_or_none()
                return OverrideRead.model_validate(row) if row is not None else None

    async def list_overrides(self, *, from_date: Optional[date] = None) -> list[OverrideRead]:
        stmt = select(AvailabilityOverride).order_by(AvailabilityOverride.override_date)
        if from_date is not None:
            stmt = stmt.where(AvailabilityOverride.override_date >= from_date)
        with _store_errors():
            async with self._sessions() as session:
                result = await session.execute(stmt)
                return [OverrideRead.model_validate(o) for o in result.scalars().all()]

    async def delete_override(self, override_date: date) -> None:
        stmt = delete(AvailabilityOverride).where(AvailabilityOverride.override_date == override_date)
        with _store_errors():
            async with self._sessions.begin() as session:
                result = await session.execute(stmt)
                if result.rowcount == 0:
                    raise NotFound(f"No opening-hours override for {override_date}")
