"""
Pydantic schemas for booking requests, records and API envelopes.

Request models read the public field names (`date`, `time`, `guests`,
`name`, `email`, `phone`) and expose the column names. Rules that depend on
the restaurant (party size limit, "today", opening hours and per-date
overrides) come from the validation context:

    BookingCreate.model_validate(data, context={"today": ..., "settings": ..., "overrides": ...})
"""

from datetime import date, datetime, time
from typing import Annotated, Any, Optional

from pydantic import AfterValidator, BaseModel, BeforeValidator, EmailStr, Field, ValidationInfo
from pydantic_core import PydanticCustomError

from table_booking.core.config import Settings, get_settings
from table_booking.models.booking import ACTIVE_STATUSES, BookingStatus
from table_booking.schemas.override import is_open_at, opening_hours


def _settings(info: ValidationInfo) -> Settings:
    return (info.context or {}).get("settings") or get_settings()


def _override_for(info: ValidationInfo, booking_date: Optional[date]):
    return (info.context or {}).get("overrides", {}).get(booking_date)


def _reject_bool(value: Any) -> Any:
    # JSON true/false would otherwise pass as 1/0
    if isinstance(value, bool):
        raise PydanticCustomError("int_type", "guests must be a whole number")
    return value


def _check_party_size(value: int, info: ValidationInfo) -> int:
    max_guests = _settings(info).MAX_GUESTS_PER_TABLE
    if value > max_guests:
        raise PydanticCustomError(
            "party_too_large", "guests must be between 1 and {max_guests}", {"max_guests": max_guests}
        )
    return value


def _check_booking_date(value: date, info: ValidationInfo) -> date:
    today = (info.context or {}).get("today")
    if today is not None and value < today:
        raise PydanticCustomError("past_date", "date cannot be in the past")
    override = _override_for(info, value)
    if override is not None and override.is_closed:
        reason = f": {override.reason}" if override.reason else ""
        raise PydanticCustomError(
            "restaurant_closed",
            "the restaurant is closed on {date}{reason}",
            {"date": value.isoformat(), "reason": reason},
        )
    return value


def _check_booking_time(value: time, info: ValidationInfo) -> time:
    if value.tzinfo is not None:
        raise PydanticCustomError("time_has_offset", "time must be a local time without a UTC offset")
    value = value.replace(second=0, microsecond=0)

    booking_date = info.data.get("booking_date") or (info.context or {}).get("default_date")
    opening, closing = opening_hours(_settings(info), _override_for(info, booking_date))
    if not is_open_at(value, opening, closing):
        raise PydanticCustomError(
            "outside_opening_hours",
            "time must be between {opening} and {closing}",
            {"opening": f"{opening:%H:%M}", "closing": f"{closing:%H:%M}"},
        )
    return value


def _lower_status(value: Any) -> Any:
    return value.strip().lower() if isinstance(value, str) else value


BookingDate = Annotated[date, AfterValidator(_check_booking_date)]
BookingTime = Annotated[time, AfterValidator(_check_booking_time)]
PartySize = Annotated[int, BeforeValidator(_reject_bool), Field(ge=1), AfterValidator(_check_party_size)]
Status = Annotated[BookingStatus, BeforeValidator(_lower_status)]


class BookingCreate(BaseModel):
    """A new booking request. Field order is the order violations are reported in."""

    booking_date: BookingDate = Field(alias="date")
    booking_time: BookingTime = Field(alias="time")
    party_size: PartySize = Field(alias="guests")
    guest_name: str = Field(alias="name", min_length=1, max_length=200)
    guest_email: EmailStr = Field(alias="email")
    guest_phone: str = Field(alias="phone", min_length=1, max_length=20)
    special_requests: Optional[str] = Field(None, max_length=1000)

    model_config = {"frozen": True, "str_strip_whitespace": True, "coerce_numbers_to_str": True}


class BookingUpdate(BaseModel):
    """A partial update. `None` means "leave unchanged"."""

    booking_date: Optional[BookingDate] = Field(None, alias="date")
    booking_time: Optional[BookingTime] = Field(None, alias="time")
    party_size: Optional[PartySize] = Field(None, alias="guests")
    guest_name: Optional[str] = Field(None, alias="name", min_length=1, max_length=200)
    guest_email: Optional[EmailStr] = Field(None, alias="email")
    guest_phone: Optional[str] = Field(None, alias="phone", min_length=1, max_length=20)
    special_requests: Optional[str] = Field(None, max_length=1000)
    status: Optional[Status] = None

    model_config = {"frozen": True, "str_strip_whitespace": True, "coerce_numbers_to_str": True}

    @property
    def changes_slot(self) -> bool:
        return any(v is not None for v in (self.booking_date, self.booking_time, self.party_size))

    def contact_changes(self) -> dict[str, Any]:
        return self.model_dump(
            include={"guest_name", "guest_email", "guest_phone", "special_requests"},
            exclude_none=True,
        )


class AvailabilityQuery(BaseModel):
    booking_date: BookingDate = Field(alias="date")
    booking_time: BookingTime = Field(alias="time")
    party_size: PartySize = Field(alias="guests")

    model_config = {"frozen": True, "str_strip_whitespace": True, "coerce_numbers_to_str": True}


class BookingDraft(BaseModel):
    """Everything a store needs to create a booking, apart from its table and slot."""

    guest_name: str
    guest_email: str
    guest_phone: str
    party_size: int
    special_requests: Optional[str] = None
    status: BookingStatus = BookingStatus.CONFIRMED

    model_config = {"frozen": True}


class BookingRead(BaseModel):
    id: int
    table_id: Optional[int]
    guest_name: str
    guest_email: str
    guest_phone: str
    booking_date: date
    booking_time: time
    party_size: int
    status: BookingStatus
    special_requests: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    cancelled_at: Optional[datetime] = None

    model_config = {"from_attributes": True, "frozen": True}

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES


class BookingResponse(BaseModel):
    success: bool = True
    message: str
    data: BookingRead


class BookingListResponse(BaseModel):
    success: bool = True
    data: list[BookingRead]
    count: int


class DailySummary(BaseModel):
    booking_date: date
    total_bookings: int
    total_guests: int
    confirmed_bookings: int
    cancelled_bookings: int


class TableUtilization(BaseModel):
    table_id: int
    table_number: str
    capacity: int
    location: str
    total_bookings: int
    avg_guests: Optional[float] = None
