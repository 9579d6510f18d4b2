"""
Tests for the structlog setup: service context and slot value rendering.
"""

import json
import logging
from datetime import date, time

import pytest
import structlog

from table_booking.core import logging as booking_logging
from table_booking.core.config import Settings
from table_booking.models.booking import BookingStatus


@pytest.fixture
def json_logging(capsys):
    settings = Settings(LOG_FORMAT="json", REDIS_ENABLED=False)
    booking_logging.setup_logging(settings, force=True)
    yield settings

    logging.getLogger().handlers = []
    structlog.reset_defaults()
    booking_logging._configured = False


def test_slot_values_are_rendered_flat():
    event = booking_logging.render_slot_values(
        None,
        "info",
        {
            "event": "booking_created",
            "date": date(2026, 6, 16),
            "time": time(19, 30, 45),
            "status": BookingStatus.NO_SHOW,
            "guests": 4,
        },
    )

    assert event == {
        "event": "booking_created",
        "date": "2026-06-16",
        "time": "19:30",
        "status": "no_show",
        "guests": 4,
    }


def test_json_events_carry_service_context(json_logging, capsys):
    booking_logging.get_logger("tests.booking").info(
        "booking_created", date=date(2026, 6, 16), status=BookingStatus.CONFIRMED
    )

    record = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert record["event"] == "booking_created"
    assert record["service"] == json_logging.APP_NAME
    assert record["store"] == json_logging.STORE_BACKEND
    assert record["date"] == "2026-06-16"
    assert record["status"] == "confirmed"
    assert record["level"] == "info"


def test_stdlib_records_share_the_format(json_logging, capsys):
    logging.getLogger("uvicorn.error").warning("worker restarted")

    record = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert record["event"] == "worker restarted"
    assert record["service"] == json_logging.APP_NAME


def test_noisy_libraries_are_quieted(json_logging):
    for name in booking_logging.QUIET_LOGGERS:
        assert logging.getLogger(name).level == logging.WARNING
