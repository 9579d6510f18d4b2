"""
Availability queries.

These reads only narrow the candidate set. They never reserve anything: the
booking service still goes through the store's atomic `try_reserve`, which
is the only place a slot can be claimed.
"""

from datetime import date, time
from typing import Optional

from table_booking.schemas.availability import SlotSummary
from table_booking.schemas.table import TableRead
from table_booking.services.interfaces.booking_store import BookingStore


async def find_candidate_tables(
    store: BookingStore,
    booking_date: date,
    booking_time: time,
    party_size: int,
    *,
    exclude_booking_id: Optional[int] = None,
) -> list[TableRead]:
    """
    Tables that can host the party at this slot, smallest fit first.

    Ordered by capacity ascending so larger tables stay free for larger
    parties, then by id for a stable tie-break. `exclude_booking_id` ignores
    that booking's own hold, so an update can keep its current table. A date
    the restaurant is closed on has no candidates.
    """
    if await _is_closed(store, booking_date):
        return []
    tables = await store.find_tables(min_capacity=party_size, available_only=True)
    occupied = await _occupied_table_ids(store, booking_date, booking_time, exclude_booking_id)
    candidates = [t for t in tables if t.id not in occupied]
    return sorted(candidates, key=lambda t: (t.capacity, t.id))


async def slot_summary(store: BookingStore, booking_date: date, booking_time: time) -> SlotSummary:
    """Restaurant-wide utilization of a slot, regardless of party size."""
    tables = await store.find_tables(min_capacity=1, available_only=True)
    occupied = await _occupied_table_ids(store, booking_date, booking_time, None)
    closed = await _is_closed(store, booking_date)
    total = len(tables)
    occupied_count = sum(1 for t in tables if t.id in occupied)
    available = 0 if closed else total - occupied_count
    return SlotSummary(
        booking_date=booking_date,
        booking_time=booking_time,
        total_tables=total,
        occupied_tables=occupied_count,
        available_tables=available,
        is_available=available > 0,
        is_closed=closed,
    )


async def _is_closed(store: BookingStore, booking_date: date) -> bool:
    override = await store.get_override(booking_date)
    return override is not None and override.is_closed


async def _occupied_table_ids(
    store: BookingStore,
    booking_date: date,
    booking_time: time,
    exclude_booking_id: Optional[int],
) -> set[int]:
    active = await store.active_bookings_for(booking_date, booking_time)
    return {
        b.table_id
        for b in active
        if b.table_id is not None and b.id != exclude_booking_id
    }
