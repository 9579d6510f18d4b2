"""
Booking service: validation, table assignment and lifecycle.

CONCURRENCY STRATEGY: Claim-with-fallback
==========================================

Problem:
  Two guests ask for the same slot at the same moment. Both availability
  reads show table T03 free, both try to book it.
  Result without care: a double-booked table.

Solution:
  1. Read candidate tables (advisory only, may already be stale)
  2. Claim the first candidate with the store's atomic `try_reserve`
  3. On ConflictError someone else won that table; claim the next one
  4. When every candidate has been tried, fail with NoAvailability

  The store serializes claims per (table, date, time), so bookings for
  different tables or slots never wait on each other.

Status changes use compare-and-set on the current status and re-read on
ConcurrentModification, so two concurrent transitions cannot both apply.
"""

from collections import defaultdict
from datetime import date, datetime, time, timedelta
from statistics import mean
from typing import Any, Awaitable, Callable, Mapping, Optional

from table_booking.core.config import Settings, get_settings
from table_booking.core.errors import (
    ConcurrentModification,
    ConflictError,
    InvalidTransition,
    NoAvailability,
    StoreError,
    ValidationFailure,
)
from table_booking.core.logging import get_logger
from table_booking.core.metrics import (
    booking_latency,
    record_booking_attempt,
    record_reservation_conflict,
    record_status_transition,
)
from table_booking.models.booking import ACTIVE_STATUSES, BookingStatus
from table_booking.schemas.availability import AvailabilityResult
from table_booking.schemas.booking import BookingDraft, BookingRead, BookingUpdate, DailySummary, TableUtilization
from table_booking.schemas.override import OverrideCreate, OverrideRead
from table_booking.schemas.table import DEFAULT_TABLES, TableRead
from table_booking.services import availability_service
from table_booking.services.interfaces.booking_store import BookingStore
from table_booking.services.validator import (
    Violation,
    ViolationCode,
    validate_availability_query,
    validate_booking_patch,
    validate_booking_request,
)

logger = get_logger(__name__)

MAX_RETRY_ATTEMPTS = 3

# Allowed status changes. Terminal statuses have no way out.
TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset(
        {BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.NO_SHOW}
    ),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.NO_SHOW: frozenset(),
}


def check_transition(current: BookingStatus, target: BookingStatus) -> None:
    """Raise InvalidTransition unless `current -> target` is allowed. Same status is a no-op."""
    if target == current:
        return
    if target not in TRANSITIONS[current]:
        raise InvalidTransition(f"Cannot change booking status from {current.value} to {target.value}")


def _local_now() -> datetime:
    return datetime.now().astimezone()


class BookingService:
    def __init__(
        self,
        store: BookingStore,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = _local_now,
    ):
        self.store = store
        self.settings = settings or get_settings()
        self._clock = clock

    def today(self) -> date:
        return self._clock().date()

    # Availability

    async def check_availability(self, booking_date: date, booking_time: time, party_size: int) -> AvailabilityResult:
        if not 1 <= party_size <= self.settings.MAX_GUESTS_PER_TABLE:
            raise ValidationFailure(
                [
                    Violation(
                        ViolationCode.INVALID_PARTY_SIZE,
                        "guests",
                        f"guests must be between 1 and {self.settings.MAX_GUESTS_PER_TABLE}",
                    )
                ]
            )
        candidates = await availability_service.find_candidate_tables(
            self.store, booking_date, booking_time, party_size
        )
        summary = await availability_service.slot_summary(self.store, booking_date, booking_time)
        return AvailabilityResult(party_size=party_size, candidate_tables=candidates, slot_summary=summary)

    async def check_availability_request(self, data: Mapping[str, Any]) -> AvailabilityResult:
        """Validate raw `date`, `time` and `guests` values, then check availability."""
        result = validate_availability_query(
            data, today=self.today(), settings=self.settings, overrides=await self._overrides()
        )
        if not result.ok:
            raise ValidationFailure(result.violations)
        query = result.query
        return await self.check_availability(query.booking_date, query.booking_time, query.party_size)

    # Bookings

    async def create_booking(self, data: Mapping[str, Any]) -> BookingRead:
        """
        Validate, pick the smallest free table that fits, and claim it.

        Raises:
            ValidationFailure: with every violated rule
            NoAvailability: no table could be claimed for the slot
        """
        with booking_latency.time():
            result = validate_booking_request(
                data, today=self.today(), settings=self.settings, overrides=await self._overrides()
            )
            if not result.ok:
                record_booking_attempt("invalid")
                logger.info(
                    "booking_rejected_invalid",
                    violations=[v.code.value for v in result.violations],
                )
                raise ValidationFailure(result.violations)

            request = result.request
            draft = BookingDraft(
                guest_name=request.guest_name,
                guest_email=request.guest_email,
                guest_phone=request.guest_phone,
                party_size=request.party_size,
                special_requests=request.special_requests,
                status=BookingStatus.CONFIRMED,
            )

            async def claim(table: TableRead) -> BookingRead:
                return await self.store.try_reserve(table.id, request.booking_date, request.booking_time, draft)

            try:
                booking = await self._claim_first_free(
                    request.booking_date,
                    request.booking_time,
                    request.party_size,
                    claim,
                    operation="create",
                )
            except NoAvailability:
                record_booking_attempt("no_availability")
                raise
            except StoreError:
                record_booking_attempt("error")
                raise

        record_booking_attempt("success")
        logger.info(
            "booking_created",
            booking_id=booking.id,
            table_id=booking.table_id,
            date=str(booking.booking_date),
            time=booking.booking_time.strftime("%H:%M"),
            guests=booking.party_size,
        )
        return booking

    async def update_booking(self, booking_id: int, data: Mapping[str, Any]) -> BookingRead:
        """
        Apply a partial update.

        Slot changes (date, time, guests) re-run availability excluding this
        booking's own hold and move it atomically; status changes go through
        the transition table.

        Raises:
            NotFound, ValidationFailure, NoAvailability, InvalidTransition
        """
        booked = await self.store.get_booking(booking_id)
        result = validate_booking_patch(
            data,
            today=self.today(),
            settings=self.settings,
            overrides=await self._overrides(),
            booked_slot=(booked.booking_date, booked.booking_time),
        )
        if not result.ok:
            logger.info(
                "booking_update_rejected_invalid",
                booking_id=booking_id,
                violations=[v.code.value for v in result.violations],
            )
            raise ValidationFailure(result.violations)
        patch = result.patch

        for attempt in range(1, MAX_RETRY_ATTEMPTS + 1):
            current = await self.store.get_booking(booking_id)
            try:
                updated = await self._apply_patch(current, patch)
            except ConcurrentModification:
                logger.info("booking_update_retry", booking_id=booking_id, attempt=attempt)
                continue
            if updated.status != current.status:
                self._record_transition(current, updated)
            logger.info("booking_updated", booking_id=booking_id, fields=sorted(data.keys()))
            return updated

        raise ConcurrentModification(f"Booking {booking_id} changed concurrently, please retry")

    async def cancel_booking(self, booking_id: int) -> BookingRead:
        """
        Cancel and release the table. Cancelling twice returns the booking unchanged.

        Raises:
            NotFound, InvalidTransition (completed / no-show bookings)
        """
        for attempt in range(1, MAX_RETRY_ATTEMPTS + 1):
            current = await self.store.get_booking(booking_id)
            if current.status == BookingStatus.CANCELLED:
                return current
            check_transition(current.status, BookingStatus.CANCELLED)
            try:
                booking = await self.store.update_booking_fields(
                    booking_id,
                    {"status": BookingStatus.CANCELLED, "cancelled_at": self._clock()},
                    expected_status=current.status,
                )
            except ConcurrentModification:
                logger.info("booking_cancel_retry", booking_id=booking_id, attempt=attempt)
                continue
            self._record_transition(current, booking)
            return booking

        raise ConcurrentModification(f"Booking {booking_id} changed concurrently, please retry")

    async def delete_booking(self, booking_id: int) -> None:
        """Administrative hard delete. Customer cancellations use cancel_booking."""
        await self.store.delete_booking(booking_id)
        logger.info("booking_deleted", booking_id=booking_id)

    async def get_booking(self, booking_id: int) -> BookingRead:
        return await self.store.get_booking(booking_id)

    async def list_bookings(
        self,
        *,
        booking_date: Optional[date] = None,
        status: Optional[BookingStatus] = None,
    ) -> list[BookingRead]:
        return await self.store.list_bookings(booking_date=booking_date, status=status)

    async def daily_summary(self, booking_date: date) -> DailySummary:
        bookings = await self.store.list_bookings(booking_date=booking_date)
        return DailySummary(
            booking_date=booking_date,
            total_bookings=len(bookings),
            total_guests=sum(b.party_size for b in bookings),
            confirmed_bookings=sum(1 for b in bookings if b.status == BookingStatus.CONFIRMED),
            cancelled_bookings=sum(1 for b in bookings if b.status == BookingStatus.CANCELLED),
        )

    async def table_utilization(self, days: int = 30) -> list[TableUtilization]:
        """
        Bookings per table dated from `days` ago onwards, busiest first.

        Every status counts, cancellations included. Tables without bookings
        are listed with a zero count.
        """
        since = self.today() - timedelta(days=days)
        party_sizes: defaultdict[int, list[int]] = defaultdict(list)
        for booking in await self.store.list_bookings(from_date=since):
            if booking.table_id is not None:
                party_sizes[booking.table_id].append(booking.party_size)

        rows = [
            TableUtilization(
                table_id=table.id,
                table_number=table.table_number,
                capacity=table.capacity,
                location=table.location.value,
                total_bookings=len(party_sizes[table.id]),
                avg_guests=round(mean(party_sizes[table.id]), 2) if party_sizes[table.id] else None,
            )
            for table in await self.store.find_tables(min_capacity=1, available_only=False)
        ]
        return sorted(rows, key=lambda r: (-r.total_bookings, r.table_id))

    # Opening-hours overrides

    async def set_override(self, override: OverrideCreate) -> OverrideRead:
        """Close the restaurant or change its hours for one date. Replaces any override for that date."""
        saved = await self.store.set_override(override)
        logger.info(
            "opening_hours_override_set",
            date=str(saved.override_date),
            is_closed=saved.is_closed,
            reason=saved.reason,
        )
        return saved

    async def remove_override(self, override_date: date) -> None:
        await self.store.delete_override(override_date)
        logger.info("opening_hours_override_removed", date=str(override_date))

    async def list_overrides(self, *, from_date: Optional[date] = None) -> list[OverrideRead]:
        return await self.store.list_overrides(from_date=from_date)

    # Tables

    async def list_tables(self, *, available_only: bool = False) -> list[TableRead]:
        return await self.store.find_tables(min_capacity=1, available_only=available_only)

    async def set_table_availability(self, table_id: int, is_available: bool) -> TableRead:
        table = await self.store.set_table_availability(table_id, is_available)
        logger.info("table_availability_changed", table_id=table_id, is_available=is_available)
        return table

    async def seed_default_tables(self) -> list[TableRead]:
        added = await self.store.add_tables(DEFAULT_TABLES)
        if added:
            logger.info("tables_seeded", count=len(added))
        return added

    # Internals

    async def _overrides(self) -> dict[date, OverrideRead]:
        overrides = await self.store.list_overrides(from_date=self.today())
        return {o.override_date: o for o in overrides}

    async def _apply_patch(self, current: BookingRead, patch: BookingUpdate) -> BookingRead:
        changes: dict[str, Any] = patch.contact_changes()
        if patch.status is not None:
            check_transition(current.status, patch.status)
            if patch.status != current.status:
                changes["status"] = patch.status
                if patch.status == BookingStatus.CANCELLED:
                    changes["cancelled_at"] = self._clock()

        if not patch.changes_slot:
            if not changes:
                return current
            return await self.store.update_booking_fields(current.id, changes, expected_status=current.status)

        target_status = patch.status or current.status
        if current.status not in ACTIVE_STATUSES or target_status not in ACTIVE_STATUSES:
            raise InvalidTransition(f"Cannot reschedule a {target_status.value} booking")

        booking_date = patch.booking_date or current.booking_date
        booking_time = patch.booking_time or current.booking_time
        party_size = patch.party_size or current.party_size
        changes["party_size"] = party_size

        async def claim(table: TableRead) -> BookingRead:
            return await self.store.try_relocate(
                current.id,
                table.id,
                booking_date,
                booking_time,
                changes,
                expected_status=current.status,
            )

        same_slot = (booking_date, booking_time) == (current.booking_date, current.booking_time)
        booking = await self._claim_first_free(
            booking_date,
            booking_time,
            party_size,
            claim,
            operation="relocate",
            exclude_booking_id=current.id,
            preferred_table_id=current.table_id if same_slot else None,
        )
        logger.info(
            "booking_rescheduled",
            booking_id=booking.id,
            from_table_id=current.table_id,
            to_table_id=booking.table_id,
            date=str(booking_date),
            time=booking_time.strftime("%H:%M"),
            guests=party_size,
        )
        return booking

    async def _claim_first_free(
        self,
        booking_date: date,
        booking_time: time,
        party_size: int,
        claim: Callable[[TableRead], Awaitable[BookingRead]],
        *,
        operation: str,
        exclude_booking_id: Optional[int] = None,
        preferred_table_id: Optional[int] = None,
    ) -> BookingRead:
        candidates = await availability_service.find_candidate_tables(
            self.store,
            booking_date,
            booking_time,
            party_size,
            exclude_booking_id=exclude_booking_id,
        )
        if preferred_table_id is not None:
            # Keep the guest at their current table when it still fits
            candidates.sort(key=lambda t: t.id != preferred_table_id)

        for attempt, table in enumerate(candidates, start=1):
            try:
                return await claim(table)
            except ConflictError:
                # Lost the race for this table; the next candidate may still be free
                record_reservation_conflict(operation)
                logger.info(
                    "reservation_conflict",
                    operation=operation,
                    table_id=table.id,
                    date=str(booking_date),
                    time=booking_time.strftime("%H:%M"),
                    attempt=attempt,
                )

        logger.warning(
            "booking_failed_no_availability",
            operation=operation,
            date=str(booking_date),
            time=booking_time.strftime("%H:%M"),
            guests=party_size,
            candidates=len(candidates),
        )
        raise NoAvailability(
            f"No table available for {party_size} guests on {booking_date} at {booking_time:%H:%M}"
        )

    def _record_transition(self, before: BookingRead, after: BookingRead) -> None:
        record_status_transition(before.status.value, after.status.value)
        logger.info(
            "booking_status_changed",
            booking_id=after.id,
            from_status=before.status.value,
            to_status=after.status.value,
        )
