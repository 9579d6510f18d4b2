"""
Tests for the booking service: assignment, lifecycle and concurrency.
"""

import asyncio
from datetime import time, timedelta

import pytest
from prometheus_client import REGISTRY

from table_booking.core.config import get_settings
from table_booking.core.errors import (
    ConcurrentModification,
    ConflictError,
    InvalidTransition,
    NoAvailability,
    NotFound,
    ValidationFailure,
)
from table_booking.infrastructure.memory_store import InMemoryBookingStore
from table_booking.models.booking import BookingStatus
from table_booking.schemas.booking import BookingDraft
from table_booking.schemas.override import OverrideCreate
from table_booking.schemas.table import TableCreate
from table_booking.services.booking_service import MAX_RETRY_ATTEMPTS, BookingService, check_transition
from table_booking.services.validator import ViolationCode


class StaleReadStore(InMemoryBookingStore):
    """Yields after reading occupancy, so concurrent requests all act on the same stale view."""

    async def active_bookings_for(self, booking_date, booking_time):
        active = await super().active_bookings_for(booking_date, booking_time)
        await asyncio.sleep(0)
        return active


class FlakyStatusStore(InMemoryBookingStore):
    """Reports a concurrent status change on the first `failures` writes."""

    def __init__(self, failures: int):
        super().__init__()
        self.failures = failures
        self.calls = 0

    async def update_booking_fields(self, booking_id, changes, *, expected_status=None):
        self.calls += 1
        if self.calls <= self.failures:
            raise ConcurrentModification("changed underneath")
        return await super().update_booking_fields(booking_id, changes, expected_status=expected_status)


class RelocationAuditStore(StaleReadStore):
    """Records where the booking sits each time one of its relocations loses a race."""

    def __init__(self):
        super().__init__()
        self.after_conflict = []

    async def try_relocate(self, booking_id, table_id, booking_date, booking_time, changes, *, expected_status=None):
        try:
            return await super().try_relocate(
                booking_id, table_id, booking_date, booking_time, changes, expected_status=expected_status
            )
        except ConflictError:
            self.after_conflict.append(await self.get_booking(booking_id))
            raise


def conflicts(operation: str) -> float:
    return REGISTRY.get_sample_value("table_reservation_conflicts_total", {"operation": operation}) or 0.0


async def service_with(store: InMemoryBookingStore, clock, *tables: TableCreate) -> BookingService:
    await store.add_tables(tables)
    return BookingService(store, get_settings(), clock=clock)


# Creation


@pytest.mark.asyncio
async def test_create_assigns_smallest_fitting_table(service, make_payload, tomorrow):
    booking = await service.create_booking(make_payload(guests=2))

    assert booking.table_id == 1
    assert booking.status == BookingStatus.CONFIRMED
    assert booking.booking_date == tomorrow
    assert booking.booking_time == time(19, 0)
    assert booking.party_size == 2


@pytest.mark.asyncio
async def test_second_booking_gets_next_table(service, make_payload):
    first = await service.create_booking(make_payload(guests=2))
    second = await service.create_booking(make_payload(guests=2))

    assert (first.table_id, second.table_id) == (1, 2)


@pytest.mark.asyncio
async def test_party_of_five_skips_four_tops(service, make_payload):
    booking = await service.create_booking(make_payload(guests=5))
    assert booking.table_id == 6


@pytest.mark.asyncio
async def test_invalid_request_raises_with_all_violations(service, make_payload, yesterday):
    with pytest.raises(ValidationFailure) as exc_info:
        await service.create_booking(make_payload(date=yesterday.isoformat(), email="nope"))

    assert [v.code for v in exc_info.value.violations] == [
        ViolationCode.PAST_DATE,
        ViolationCode.INVALID_EMAIL,
    ]
    assert await service.list_bookings() == []


@pytest.mark.asyncio
async def test_no_table_large_enough(service, make_payload):
    with pytest.raises(NoAvailability):
        await service.create_booking(make_payload(guests=9))


@pytest.mark.asyncio
async def test_sequential_exhaustion(single_table_service, make_payload):
    await single_table_service.create_booking(make_payload())

    with pytest.raises(NoAvailability):
        await single_table_service.create_booking(make_payload(name="B"))


@pytest.mark.asyncio
async def test_concurrent_requests_for_last_table(single_table_service, make_payload):
    """Ten guests race for the only table: exactly one wins."""
    results = await asyncio.gather(
        *(single_table_service.create_booking(make_payload(name=f"guest{i}")) for i in range(10)),
        return_exceptions=True,
    )

    booked = [r for r in results if not isinstance(r, Exception)]
    failed = [r for r in results if isinstance(r, Exception)]
    assert len(booked) == 1
    assert len(failed) == 9
    assert all(isinstance(e, NoAvailability) for e in failed)
    assert len(await single_table_service.list_bookings()) == 1


@pytest.mark.asyncio
async def test_lost_race_falls_back_to_next_table(make_payload, clock):
    """All three requests see both tables free; the store decides who gets what."""
    service = await service_with(
        StaleReadStore(),
        clock,
        TableCreate(table_number="T01", capacity=4),
        TableCreate(table_number="T02", capacity=4),
    )
    before = conflicts("create")

    results = await asyncio.gather(
        *(service.create_booking(make_payload(name=name)) for name in ("A", "B", "C")),
        return_exceptions=True,
    )

    booked = [r for r in results if not isinstance(r, Exception)]
    assert sorted(b.table_id for b in booked) == [1, 2]
    assert [type(r) for r in results if isinstance(r, Exception)] == [NoAvailability]
    assert conflicts("create") - before == 3


@pytest.mark.asyncio
async def test_unavailable_table_is_never_assigned(service, make_payload):
    await service.set_table_availability(1, False)

    booking = await service.create_booking(make_payload(guests=2))

    assert booking.table_id == 2


@pytest.mark.asyncio
async def test_taking_table_out_of_service_keeps_bookings(service, make_payload):
    booking = await service.create_booking(make_payload(guests=2))

    await service.set_table_availability(booking.table_id, False)

    assert (await service.get_booking(booking.id)).table_id == booking.table_id


# Cancellation and deletion


@pytest.mark.asyncio
async def test_cancel_releases_slot(single_table_service, make_payload, now):
    booking = await single_table_service.create_booking(make_payload())

    cancelled = await single_table_service.cancel_booking(booking.id)
    rebooked = await single_table_service.create_booking(make_payload(name="B"))

    assert cancelled.status == BookingStatus.CANCELLED
    assert cancelled.cancelled_at == now
    assert rebooked.table_id == booking.table_id


@pytest.mark.asyncio
async def test_cancel_twice_is_a_no_op(service, make_payload):
    booking = await service.create_booking(make_payload())
    first = await service.cancel_booking(booking.id)
    second = await service.cancel_booking(booking.id)
    assert second == first


@pytest.mark.asyncio
async def test_cannot_cancel_completed_booking(service, make_payload):
    booking = await service.create_booking(make_payload())
    await service.update_booking(booking.id, {"status": "completed"})

    with pytest.raises(InvalidTransition):
        await service.cancel_booking(booking.id)


@pytest.mark.asyncio
async def test_delete_releases_slot(single_table_service, make_payload):
    booking = await single_table_service.create_booking(make_payload())

    await single_table_service.delete_booking(booking.id)

    with pytest.raises(NotFound):
        await single_table_service.get_booking(booking.id)
    assert (await single_table_service.create_booking(make_payload(name="B"))).table_id == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("operation", ["get_booking", "cancel_booking", "delete_booking"])
async def test_unknown_booking(service, operation):
    with pytest.raises(NotFound):
        await getattr(service, operation)(999)


@pytest.mark.asyncio
async def test_update_unknown_booking(service):
    with pytest.raises(NotFound):
        await service.update_booking(999, {"name": "B"})


# Status transitions


@pytest.mark.parametrize(
    "current,target",
    [
        (BookingStatus.PENDING, BookingStatus.CONFIRMED),
        (BookingStatus.PENDING, BookingStatus.CANCELLED),
        (BookingStatus.CONFIRMED, BookingStatus.COMPLETED),
        (BookingStatus.CONFIRMED, BookingStatus.CANCELLED),
        (BookingStatus.CONFIRMED, BookingStatus.NO_SHOW),
        (BookingStatus.COMPLETED, BookingStatus.COMPLETED),
    ],
)
def test_allowed_transitions(current, target):
    check_transition(current, target)


@pytest.mark.parametrize(
    "current,target",
    [
        (BookingStatus.PENDING, BookingStatus.COMPLETED),
        (BookingStatus.CONFIRMED, BookingStatus.PENDING),
        (BookingStatus.CANCELLED, BookingStatus.CONFIRMED),
        (BookingStatus.COMPLETED, BookingStatus.CANCELLED),
        (BookingStatus.NO_SHOW, BookingStatus.CONFIRMED),
    ],
)
def test_forbidden_transitions(current, target):
    with pytest.raises(InvalidTransition):
        check_transition(current, target)


@pytest.mark.asyncio
async def test_pending_booking_can_be_confirmed(service, tomorrow):
    draft = BookingDraft(
        guest_name="A",
        guest_email="a@b.com",
        guest_phone="+1",
        party_size=2,
        status=BookingStatus.PENDING,
    )
    pending = await service.store.try_reserve(1, tomorrow, time(19, 0), draft)

    confirmed = await service.update_booking(pending.id, {"status": "confirmed"})

    assert confirmed.status == BookingStatus.CONFIRMED
    assert confirmed.table_id == 1


@pytest.mark.asyncio
async def test_no_show_releases_nothing_but_cannot_come_back(service, make_payload):
    booking = await service.create_booking(make_payload())
    no_show = await service.update_booking(booking.id, {"status": "no_show"})

    assert no_show.status == BookingStatus.NO_SHOW
    with pytest.raises(InvalidTransition):
        await service.update_booking(booking.id, {"status": "confirmed"})


@pytest.mark.asyncio
async def test_status_retry_after_concurrent_modification(make_payload, clock):
    store = FlakyStatusStore(failures=1)
    service = await service_with(store, clock, TableCreate(table_number="T01", capacity=4))
    booking = await service.create_booking(make_payload())

    cancelled = await service.cancel_booking(booking.id)

    assert cancelled.status == BookingStatus.CANCELLED
    assert store.calls == 2


@pytest.mark.asyncio
async def test_status_retry_gives_up(make_payload, clock):
    store = FlakyStatusStore(failures=MAX_RETRY_ATTEMPTS)
    service = await service_with(store, clock, TableCreate(table_number="T01", capacity=4))
    booking = await service.create_booking(make_payload())

    with pytest.raises(ConcurrentModification):
        await service.update_booking(booking.id, {"status": "completed"})
    assert store.calls == MAX_RETRY_ATTEMPTS


# Updates


@pytest.mark.asyncio
async def test_contact_update_keeps_table(service, make_payload):
    booking = await service.create_booking(make_payload())

    updated = await service.update_booking(booking.id, {"name": "Grace", "special_requests": "quiet corner"})

    assert updated.guest_name == "Grace"
    assert updated.special_requests == "quiet corner"
    assert updated.table_id == booking.table_id


@pytest.mark.asyncio
async def test_update_rejects_invalid_fields(service, make_payload):
    booking = await service.create_booking(make_payload())

    with pytest.raises(ValidationFailure) as exc_info:
        await service.update_booking(booking.id, {"guests": 0, "status": "seated"})

    assert [v.code for v in exc_info.value.violations] == [
        ViolationCode.INVALID_PARTY_SIZE,
        ViolationCode.INVALID_STATUS,
    ]


@pytest.mark.asyncio
async def test_reschedule_frees_old_slot(single_table_service, make_payload):
    booking = await single_table_service.create_booking(make_payload())

    moved = await single_table_service.update_booking(booking.id, {"time": "20:30"})
    other = await single_table_service.create_booking(make_payload(name="B"))

    assert moved.booking_time == time(20, 30)
    assert moved.table_id == 1
    assert other.booking_time == time(19, 0)
    assert other.table_id == 1


@pytest.mark.asyncio
async def test_growing_party_moves_to_bigger_table(service, make_payload):
    booking = await service.create_booking(make_payload(guests=4))
    assert booking.table_id == 3

    bigger = await service.update_booking(booking.id, {"guests": 6})

    assert bigger.table_id == 6
    assert bigger.party_size == 6
    # T03 is free again for someone else
    assert (await service.create_booking(make_payload(guests=4))).table_id == 3


@pytest.mark.asyncio
async def test_same_slot_update_keeps_current_table(service, make_payload):
    first = await service.create_booking(make_payload(guests=2))
    second = await service.create_booking(make_payload(guests=2, name="B"))
    await service.cancel_booking(first.id)

    updated = await service.update_booking(second.id, {"guests": 1})

    assert updated.table_id == second.table_id == 2
    assert updated.party_size == 1


@pytest.mark.asyncio
async def test_reschedule_into_full_slot_leaves_booking_untouched(single_table_service, make_payload):
    blocker = await single_table_service.create_booking(make_payload(time="20:00"))
    booking = await single_table_service.create_booking(make_payload(name="B"))

    with pytest.raises(NoAvailability):
        await single_table_service.update_booking(booking.id, {"time": "20:00"})

    unchanged = await single_table_service.get_booking(booking.id)
    assert unchanged.booking_time == time(19, 0)
    assert unchanged.table_id == 1
    assert (await single_table_service.get_booking(blocker.id)).booking_time == time(20, 0)


@pytest.mark.asyncio
async def test_reschedule_losing_race_moves_to_next_table(make_payload, clock, tomorrow):
    """A reschedule and a new booking both see T01 free at 20:00; the new booking wins it."""
    store = RelocationAuditStore()
    service = await service_with(
        store,
        clock,
        TableCreate(table_number="T01", capacity=4),
        TableCreate(table_number="T02", capacity=4),
    )
    booking = await service.create_booking(make_payload(name="A"))
    assert booking.table_id == 1
    before = conflicts("relocate")

    created, moved = await asyncio.gather(
        service.create_booking(make_payload(name="B", time="20:00")),
        service.update_booking(booking.id, {"time": "20:00"}),
    )

    assert (created.table_id, created.booking_time) == (1, time(20, 0))
    assert (moved.id, moved.table_id, moved.booking_time) == (booking.id, 2, time(20, 0))
    assert conflicts("relocate") - before == 1
    # The lost attempt left the booking on its old slot
    assert [(b.table_id, b.booking_time) for b in store.after_conflict] == [(1, time(19, 0))]
    assert await store.active_bookings_for(tomorrow, time(19, 0)) == []


@pytest.mark.asyncio
async def test_cannot_reschedule_cancelled_booking(service, make_payload):
    booking = await service.create_booking(make_payload())
    await service.cancel_booking(booking.id)

    with pytest.raises(InvalidTransition):
        await service.update_booking(booking.id, {"time": "20:00"})


@pytest.mark.asyncio
async def test_update_with_no_changes_returns_booking(service, make_payload):
    booking = await service.create_booking(make_payload())
    assert await service.update_booking(booking.id, {}) == booking


# Listing, reporting and tables


@pytest.mark.asyncio
async def test_list_and_daily_summary(service, make_payload, tomorrow):
    a = await service.create_booking(make_payload(guests=2))
    await service.create_booking(make_payload(guests=4, time="20:00"))
    await service.cancel_booking(a.id)

    cancelled = await service.list_bookings(status=BookingStatus.CANCELLED)
    summary = await service.daily_summary(tomorrow)

    assert [b.id for b in cancelled] == [a.id]
    assert len(await service.list_bookings(booking_date=tomorrow)) == 2
    assert summary.total_bookings == 2
    assert summary.total_guests == 6
    assert summary.confirmed_bookings == 1
    assert summary.cancelled_bookings == 1


@pytest.mark.asyncio
async def test_seed_default_tables_is_idempotent(service):
    assert await service.seed_default_tables() == []
    assert len(await service.list_tables()) == 15


@pytest.mark.asyncio
async def test_set_availability_of_unknown_table(service):
    with pytest.raises(NotFound):
        await service.set_table_availability(99, False)


@pytest.mark.asyncio
async def test_table_utilization(service, make_payload, today):
    a = await service.create_booking(make_payload(guests=2))
    await service.create_booking(make_payload(guests=1, time="20:00"))
    await service.create_booking(make_payload(guests=4))
    await service.cancel_booking(a.id)
    # Thirty days back is still in the window, thirty-one is not
    for days_ago, party_size in ((30, 3), (31, 4)):
        await service.store.try_reserve(
            3,
            today - timedelta(days=days_ago),
            time(19, 0),
            BookingDraft(guest_name="C", guest_email="c@b.com", guest_phone="+1", party_size=party_size),
        )

    rows = await service.table_utilization()

    assert len(rows) == 15
    assert [(r.table_number, r.total_bookings, r.avg_guests) for r in rows[:3]] == [
        ("T01", 2, 1.5),
        ("T03", 2, 3.5),
        ("T02", 0, None),
    ]
    assert rows[0].capacity == 2
    assert rows[0].location == "indoor"


# Opening-hours overrides


@pytest.mark.asyncio
async def test_closed_date_rejects_bookings(service, make_payload, tomorrow):
    await service.set_override(OverrideCreate(override_date=tomorrow, is_closed=True, reason="Private event"))

    with pytest.raises(ValidationFailure) as exc_info:
        await service.create_booking(make_payload())

    assert [v.code for v in exc_info.value.violations] == [ViolationCode.RESTAURANT_CLOSED]
    assert await service.list_bookings() == []


@pytest.mark.asyncio
async def test_custom_hours_apply_to_reschedules(service, make_payload, tomorrow):
    booking = await service.create_booking(make_payload(time="12:00"))
    await service.set_override(
        OverrideCreate(override_date=tomorrow, custom_opening_time=time(11, 0), custom_closing_time=time(15, 0))
    )

    with pytest.raises(ValidationFailure) as exc_info:
        await service.update_booking(booking.id, {"time": "19:00"})
    moved = await service.update_booking(booking.id, {"time": "14:00"})

    assert [v.code for v in exc_info.value.violations] == [ViolationCode.OUTSIDE_OPENING_HOURS]
    assert moved.booking_time == time(14, 0)


@pytest.mark.asyncio
async def test_removing_override_reopens_date(service, make_payload, tomorrow):
    await service.set_override(OverrideCreate(override_date=tomorrow, is_closed=True))

    await service.remove_override(tomorrow)

    assert (await service.create_booking(make_payload())).booking_date == tomorrow
    assert await service.list_overrides() == []
    with pytest.raises(NotFound):
        await service.remove_override(tomorrow)


@pytest.mark.asyncio
async def test_override_keeps_existing_bookings(service, make_payload, tomorrow):
    booking = await service.create_booking(make_payload())

    await service.set_override(OverrideCreate(override_date=tomorrow, is_closed=True))

    assert (await service.get_booking(booking.id)).status == BookingStatus.CONFIRMED
    assert (await service.update_booking(booking.id, {"phone": "+44"})).guest_phone == "+44"
