"""
Pydantic schemas for per-date opening-hours overrides.

An override either closes the restaurant for a day (holidays, private
events) or replaces the regular opening hours for that day.
"""

from datetime import date, datetime, time
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from table_booking.core.config import Settings


class OverrideCreate(BaseModel):
    override_date: date
    is_closed: bool = False
    custom_opening_time: Optional[time] = None
    custom_closing_time: Optional[time] = None
    reason: Optional[str] = Field(None, max_length=255)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def hours_come_in_pairs(self) -> "OverrideCreate":
        if (self.custom_opening_time is None) != (self.custom_closing_time is None):
            raise ValueError("custom_opening_time and custom_closing_time must be set together")
        if self.custom_opening_time is not None and self.custom_opening_time == self.custom_closing_time:
            raise ValueError("custom opening and closing times must differ")
        return self


class OverrideRead(BaseModel):
    id: int
    override_date: date
    is_closed: bool
    custom_opening_time: Optional[time] = None
    custom_closing_time: Optional[time] = None
    reason: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True, "frozen": True}


def opening_hours(settings: Settings, override: Optional[OverrideRead] = None) -> tuple[time, time]:
    """Opening and closing time in effect for a day, custom hours winning over the defaults."""
    if override is not None and override.custom_opening_time is not None:
        return override.custom_opening_time, override.custom_closing_time
    return settings.OPENING_TIME, settings.CLOSING_TIME


def is_open_at(value: time, opening: time, closing: time) -> bool:
    """Half-open `[opening, closing)`; hours may span midnight."""
    if opening <= closing:
        return opening <= value < closing
    return value >= opening or value < closing
