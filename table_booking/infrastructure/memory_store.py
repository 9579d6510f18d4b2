"""
In-process booking store.

Concurrency model:
  Every (table_id, date, time) slot has its own asyncio.Lock and an entry in
  `_holders` naming the active booking that owns it. A slot lock only exists
  while some coroutine holds or waits for it; the last one out removes it.
  `try_reserve` and `try_relocate` check the holder and commit while holding
  the slot's lock,
  so two coroutines racing for the same slot cannot both succeed. Bookings
  for different slots never wait on each other.

  Records are frozen pydantic models; updates swap in a new copy, so callers
  never observe a half-applied change.

Not durable: state lives for the lifetime of the process.
"""

import asyncio
import itertools
from collections import Counter
from contextlib import AsyncExitStack, asynccontextmanager
from datetime import date, datetime, time
from typing import Any, AsyncIterator, Callable, Iterable, Mapping, Optional

from table_booking.core.errors import ConcurrentModification, ConflictError, NotFound
from table_booking.db.base import utcnow
from table_booking.models.booking import BookingStatus
from table_booking.schemas.booking import BookingDraft, BookingRead
from table_booking.schemas.override import OverrideCreate, OverrideRead
from table_booking.schemas.table import TableCreate, TableRead
from table_booking.services.interfaces.booking_store import BookingStore

SlotKey = tuple[int, date, time]


class InMemoryBookingStore(BookingStore):
    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock
        self._tables: dict[int, TableRead] = {}
        self._bookings: dict[int, BookingRead] = {}
        self._holders: dict[SlotKey, int] = {}
        self._slot_locks: dict[SlotKey, asyncio.Lock] = {}
        self._lock_users: Counter[SlotKey] = Counter()
        self._overrides: dict[date, OverrideRead] = {}
        self._booking_ids = itertools.count(1)
        self._table_ids = itertools.count(1)
        self._override_ids = itertools.count(1)

    # Tables

    async def find_tables(self, *, min_capacity: int = 1, available_only: bool = True) -> list[TableRead]:
        return [
            table
            for table in sorted(self._tables.values(), key=lambda t: t.id)
            if table.capacity >= min_capacity and (table.is_available or not available_only)
        ]

    async def add_tables(self, tables: Iterable[TableCreate]) -> list[TableRead]:
        existing = {t.table_number for t in self._tables.values()}
        added = []
        for new_table in tables:
            if new_table.table_number in existing:
                continue
            table = TableRead(id=next(self._table_ids), **new_table.model_dump())
            self._tables[table.id] = table
            existing.add(table.table_number)
            added.append(table)
        return added

    async def set_table_availability(self, table_id: int, is_available: bool) -> TableRead:
        table = self._tables.get(table_id)
        if table is None:
            raise NotFound(f"Table {table_id} not found")
        updated = table.model_copy(update={"is_available": is_available})
        self._tables[table_id] = updated
        return updated

    # Bookings

    async def active_bookings_for(self, booking_date: date, booking_time: time) -> list[BookingRead]:
        return [
            b
            for b in sorted(self._bookings.values(), key=lambda b: b.id)
            if b.booking_date == booking_date and b.booking_time == booking_time and b.is_active
        ]

    async def try_reserve(
        self,
        table_id: int,
        booking_date: date,
        booking_time: time,
        draft: BookingDraft,
    ) -> BookingRead:
        if table_id not in self._tables:
            raise NotFound(f"Table {table_id} not found")

        key = (table_id, booking_date, booking_time)
        async with self._locked(key):
            if key in self._holders:
                raise ConflictError(f"Table {table_id} is already booked for {booking_date} {booking_time}")

            now = self._clock()
            booking = BookingRead(
                id=next(self._booking_ids),
                table_id=table_id,
                booking_date=booking_date,
                booking_time=booking_time,
                created_at=now,
                updated_at=now,
                **draft.model_dump(),
            )
            self._store(booking)
            return booking

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
        if table_id not in self._tables:
            raise NotFound(f"Table {table_id} not found")

        new_key = (table_id, booking_date, booking_time)
        while True:
            old_key = _slot_of(self._get(booking_id))
            async with self._locked(old_key, new_key):
                current = self._get(booking_id)
                if _slot_of(current) != old_key:
                    # Moved while we were waiting; lock the new pair instead
                    continue
                _check_status(current, expected_status)

                holder = self._holders.get(new_key)
                if holder is not None and holder != booking_id:
                    raise ConflictError(
                        f"Table {table_id} is already booked for {booking_date} {booking_time}"
                    )

                updated = current.model_copy(
                    update={
                        **changes,
                        "table_id": table_id,
                        "booking_date": booking_date,
                        "booking_time": booking_time,
                        "updated_at": self._clock(),
                    }
                )
                self._replace(current, updated)
                return updated

    async def get_booking(self, booking_id: int) -> BookingRead:
        return self._get(booking_id)

    async def update_booking_fields(
        self,
        booking_id: int,
        changes: Mapping[str, Any],
        *,
        expected_status: Optional[BookingStatus] = None,
    ) -> BookingRead:
        while True:
            key = _slot_of(self._get(booking_id))
            async with self._locked(key):
                current = self._get(booking_id)
                if _slot_of(current) != key:
                    continue
                _check_status(current, expected_status)
                return self._apply(current, changes)

    async def delete_booking(self, booking_id: int) -> None:
        booking = self._get(booking_id)
        self._release(booking)
        del self._bookings[booking_id]

    async def list_bookings(
        self,
        *,
        booking_date: Optional[date] = None,
        status: Optional[BookingStatus] = None,
        from_date: Optional[date] = None,
    ) -> list[BookingRead]:
        return [
            b
            for b in sorted(self._bookings.values(), key=lambda b: b.id)
            if (booking_date is None or b.booking_date == booking_date)
            and (status is None or b.status == status)
            and (from_date is None or b.booking_date >= from_date)
        ]

    # Opening-hours overrides

    async def set_override(self, override: OverrideCreate) -> OverrideRead:
        existing = self._overrides.get(override.override_date)
        saved = OverrideRead(
            id=existing.id if existing else next(self._override_ids),
            created_at=existing.created_at if existing else self._clock(),
            **override.model_dump(),
        )
        self._overrides[saved.override_date] = saved
        return saved

    async def get_override(self, override_date: date) -> Optional[OverrideRead]:
        return self._overrides.get(override_date)

    async def list_overrides(self, *, from_date: Optional[date] = None) -> list[OverrideRead]:
        return [
            o
            for o in sorted(self._overrides.values(), key=lambda o: o.override_date)
            if from_date is None or o.override_date >= from_date
        ]

    async def delete_override(self, override_date: date) -> None:
        if self._overrides.pop(override_date, None) is None:
            raise NotFound(f"No opening-hours override for {override_date}")

    # Internals

    @asynccontextmanager
    async def _locked(self, *keys: Optional[SlotKey]) -> AsyncIterator[None]:
        """Hold the locks of every given slot. Drops each lock once nobody holds or awaits it."""
        ordered = sorted({k for k in keys if k is not None})
        self._lock_users.update(ordered)
        try:
            async with AsyncExitStack() as stack:
                # Fixed acquisition order so two relocations cannot deadlock
                for key in ordered:
                    await stack.enter_async_context(self._slot_locks.setdefault(key, asyncio.Lock()))
                yield
        finally:
            for key in ordered:
                self._lock_users[key] -= 1
                if self._lock_users[key] == 0:
                    del self._lock_users[key]
                    del self._slot_locks[key]

    def _get(self, booking_id: int) -> BookingRead:
        booking = self._bookings.get(booking_id)
        if booking is None:
            raise NotFound(f"Booking {booking_id} not found")
        return booking

    def _apply(self, current: BookingRead, changes: Mapping[str, Any]) -> BookingRead:
        updated = current.model_copy(update={**changes, "updated_at": self._clock()})
        self._replace(current, updated)
        return updated

    def _store(self, booking: BookingRead) -> None:
        self._bookings[booking.id] = booking
        key = _slot_of(booking)
        if key is not None and booking.is_active:
            self._holders[key] = booking.id

    def _release(self, booking: BookingRead) -> None:
        key = _slot_of(booking)
        if key is not None and self._holders.get(key) == booking.id:
            del self._holders[key]

    def _replace(self, current: BookingRead, updated: BookingRead) -> None:
        self._release(current)
        self._store(updated)


def _slot_of(booking: BookingRead) -> Optional[SlotKey]:
    if booking.table_id is None:
        return None
    return (booking.table_id, booking.booking_date, booking.booking_time)


def _check_status(booking: BookingRead, expected_status: Optional[BookingStatus]) -> None:
    if expected_status is not None and booking.status != expected_status:
        raise ConcurrentModification(
            f"Booking {booking.id} is {booking.status.value}, expected {expected_status.value}"
        )
