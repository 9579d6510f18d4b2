"""
Structured logging for the booking service, built on structlog.

Every event carries the service name and the active store backend, plus
whatever request context the middleware bound (request_id, method, path).
Booking events log dates, times and statuses as keyword arguments; they
are rendered as ISO strings and enum values so JSON output stays flat.
"""

import logging
import sys
from datetime import date, time
from enum import Enum
from typing import Any, Optional

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from table_booking.core.config import Settings, get_settings

# Chatty at INFO, useful only when debugging the library itself
QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "aiosqlite", "asyncpg", "redis")

_configured = False


def _service_context(settings: Settings) -> Processor:
    def add_service(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service", settings.APP_NAME)
        event_dict.setdefault("store", settings.STORE_BACKEND)
        return event_dict

    return add_service


def render_slot_values(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Dates and times as ISO strings (times to the minute), enums as their values."""
    for key, value in event_dict.items():
        if isinstance(value, Enum):
            event_dict[key] = value.value
        elif isinstance(value, time):
            event_dict[key] = value.strftime("%H:%M")
        elif isinstance(value, date):
            event_dict[key] = value.isoformat()
    return event_dict


def _renderer(settings: Settings) -> Processor:
    log_format = settings.LOG_FORMAT.lower()
    if log_format == "auto":
        log_format = "json" if settings.ENVIRONMENT == "production" else "console"
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def setup_logging(settings: Optional[Settings] = None, *, force: bool = False) -> None:
    """Route structlog and stdlib logging through one handler. Runs once unless `force`."""
    global _configured
    if _configured and not force:
        return
    settings = settings or get_settings()

    pre_chain: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        _service_context(settings),
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    structlog.configure(
        processors=[
            *pre_chain,
            render_slot_values,
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    # foreign_pre_chain gives uvicorn and SQLAlchemy records the same fields
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, _renderer(settings)],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
