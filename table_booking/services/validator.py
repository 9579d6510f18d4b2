"""
Booking request validation.

Parsing and per-field rules live on the pydantic request models in
`table_booking.schemas.booking`. This module runs them and turns pydantic's
errors into `Violation`s with stable codes. Every rule is checked and every
violation is returned together, in field order, so a client can fix all of
them in one round trip.

No I/O and no clock reads: callers pass `today` and whatever opening-hours
overrides they loaded.
"""

from dataclasses import dataclass, field
from datetime import date, time
from enum import Enum
from typing import Any, Iterable, Mapping, Optional

from pydantic import BaseModel, ValidationError

from table_booking.core.config import Settings, get_settings
from table_booking.schemas.booking import AvailabilityQuery, BookingCreate, BookingUpdate
from table_booking.schemas.override import OverrideRead, is_open_at, opening_hours


class ViolationCode(str, Enum):
    MISSING_FIELD = "MissingField"
    INVALID_PARTY_SIZE = "InvalidPartySize"
    INVALID_DATE = "InvalidDate"
    PAST_DATE = "PastDate"
    RESTAURANT_CLOSED = "RestaurantClosed"
    INVALID_TIME = "InvalidTime"
    OUTSIDE_OPENING_HOURS = "OutsideOpeningHours"
    INVALID_EMAIL = "InvalidEmail"
    FIELD_TOO_LONG = "FieldTooLong"
    INVALID_STATUS = "InvalidStatus"
    INVALID_REQUEST = "InvalidRequest"


@dataclass(frozen=True)
class Violation:
    code: ViolationCode
    field: str
    message: str


@dataclass(frozen=True)
class ValidationResult:
    request: Optional[BookingCreate] = None
    violations: list[Violation] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.violations


@dataclass(frozen=True)
class PatchValidationResult:
    patch: Optional[BookingUpdate] = None
    violations: list[Violation] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.violations


@dataclass(frozen=True)
class QueryValidationResult:
    query: Optional[AvailabilityQuery] = None
    violations: list[Violation] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.violations


REQUIRED_FIELDS = ("date", "time", "guests", "name", "email", "phone")
OPTIONAL_FIELDS = ("special_requests",)
PATCH_FIELDS = REQUIRED_FIELDS + OPTIONAL_FIELDS + ("status",)
QUERY_FIELDS = ("date", "time", "guests")

# Error types that decide the code on their own
_ERROR_CODES = {
    "missing": ViolationCode.MISSING_FIELD,
    "string_too_short": ViolationCode.MISSING_FIELD,
    "string_too_long": ViolationCode.FIELD_TOO_LONG,
    "past_date": ViolationCode.PAST_DATE,
    "restaurant_closed": ViolationCode.RESTAURANT_CLOSED,
    "outside_opening_hours": ViolationCode.OUTSIDE_OPENING_HOURS,
}

# Anything else is a malformed value for its field
_FIELD_CODES = {
    "date": ViolationCode.INVALID_DATE,
    "time": ViolationCode.INVALID_TIME,
    "guests": ViolationCode.INVALID_PARTY_SIZE,
    "email": ViolationCode.INVALID_EMAIL,
    "status": ViolationCode.INVALID_STATUS,
}

_FIELD_NAMES = {
    "booking_date": "date",
    "booking_time": "time",
    "party_size": "guests",
    "guest_name": "name",
    "guest_email": "email",
    "guest_phone": "phone",
}

_REQUEST_SOURCES = ("body", "query", "path", "header", "cookie")


def validate_booking_request(
    data: Mapping[str, Any],
    *,
    today: date,
    settings: Optional[Settings] = None,
    overrides: Optional[Mapping[date, OverrideRead]] = None,
) -> ValidationResult:
    context = _context(today, settings, overrides)
    request, violations = _run(BookingCreate, _present(data), context, REQUIRED_FIELDS + OPTIONAL_FIELDS)
    if violations:
        return ValidationResult(violations=violations)
    return ValidationResult(request=request)


def validate_booking_patch(
    data: Mapping[str, Any],
    *,
    today: date,
    settings: Optional[Settings] = None,
    overrides: Optional[Mapping[date, OverrideRead]] = None,
    booked_slot: Optional[tuple[date, time]] = None,
) -> PatchValidationResult:
    """
    Validate the keys present in `data`; absent keys are left unchanged.

    `booked_slot` is the booking's current (date, time). A new time is then
    checked against the hours of the booked date, and a new date against
    the booked time.
    """
    context = _context(today, settings, overrides)
    if booked_slot is not None:
        context["default_date"] = booked_slot[0]

    violations = [
        Violation(ViolationCode.MISSING_FIELD, name, f"{name} cannot be empty")
        for name in REQUIRED_FIELDS + ("status",)
        if name in data and _is_blank(data[name])
    ]
    patch, errors = _run(BookingUpdate, _present(data), context, PATCH_FIELDS)
    violations = _in_field_order(violations + errors, PATCH_FIELDS)

    if (
        patch is not None
        and booked_slot is not None
        and patch.booking_date is not None
        and patch.booking_time is None
    ):
        outside = _booked_time_violation(patch.booking_date, booked_slot[1], context)
        if outside is not None:
            violations.append(outside)

    if violations:
        return PatchValidationResult(violations=violations)
    return PatchValidationResult(patch=patch)


def validate_availability_query(
    data: Mapping[str, Any],
    *,
    today: date,
    settings: Optional[Settings] = None,
    overrides: Optional[Mapping[date, OverrideRead]] = None,
) -> QueryValidationResult:
    """Same date, time and party-size rules as a booking request."""
    context = _context(today, settings, overrides)
    query, violations = _run(AvailabilityQuery, _present(data), context, QUERY_FIELDS)
    if violations:
        return QueryValidationResult(violations=violations)
    return QueryValidationResult(query=query)


def violations_from_errors(errors: Iterable[Mapping[str, Any]]) -> list[Violation]:
    """Map pydantic error dicts to violations, one per field."""
    violations: list[Violation] = []
    seen: set[str] = set()
    for error in errors:
        name = _field_of(error["loc"])
        if name in seen:
            continue
        seen.add(name)
        code = _ERROR_CODES.get(error["type"]) or _FIELD_CODES.get(name, ViolationCode.INVALID_REQUEST)
        message = f"{name} is required" if code == ViolationCode.MISSING_FIELD else error["msg"]
        violations.append(Violation(code, name, message))
    return violations


def _run(
    model: type[BaseModel],
    data: Mapping[str, Any],
    context: dict[str, Any],
    order: tuple[str, ...],
) -> tuple[Optional[BaseModel], list[Violation]]:
    try:
        return model.model_validate(data, context=context), []
    except ValidationError as e:
        return None, _in_field_order(violations_from_errors(e.errors()), order)


def _context(
    today: date,
    settings: Optional[Settings],
    overrides: Optional[Mapping[date, OverrideRead]],
) -> dict[str, Any]:
    return {"today": today, "settings": settings or get_settings(), "overrides": overrides or {}}


def _present(data: Mapping[str, Any]) -> dict[str, Any]:
    # Blank values count as missing
    return {k: v for k, v in data.items() if not _is_blank(v)}


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _field_of(loc: tuple) -> str:
    names = [part for part in loc if isinstance(part, str)]
    if len(names) > 1 and names[0] in _REQUEST_SOURCES:
        names = names[1:]
    if not names:
        return "body"
    return _FIELD_NAMES.get(names[0], names[0])


def _in_field_order(violations: list[Violation], order: tuple[str, ...]) -> list[Violation]:
    return sorted(violations, key=lambda v: order.index(v.field) if v.field in order else len(order))


def _booked_time_violation(booking_date: date, booked_time: time, context: dict[str, Any]) -> Optional[Violation]:
    opening, closing = opening_hours(context["settings"], context["overrides"].get(booking_date))
    if is_open_at(booked_time, opening, closing):
        return None
    return Violation(
        ViolationCode.OUTSIDE_OPENING_HOURS,
        "date",
        f"booked time {booked_time:%H:%M} is outside opening hours "
        f"({opening:%H:%M}-{closing:%H:%M}) on {booking_date}",
    )
