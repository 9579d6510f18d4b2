"""
Pytest fixtures for stores, the booking service and the HTTP client.

The clock is pinned so "today", "tomorrow" and "yesterday" are stable. SQL
store tests run against a throwaway SQLite file per test; Redis is disabled.
"""

import os

os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("ENVIRONMENT", "test")

from datetime import date, datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from table_booking.api.dependencies import get_booking_service
from table_booking.core.config import get_settings
from table_booking.db.session import build_engine, create_schema
from table_booking.infrastructure.memory_store import InMemoryBookingStore
from table_booking.infrastructure.sql_store import SqlAlchemyBookingStore
from table_booking.main import app
from table_booking.schemas.table import DEFAULT_TABLES, TableCreate
from table_booking.services.booking_service import BookingService
from table_booking.services.interfaces.booking_store import BookingStore

NOW = datetime(2026, 6, 15, 12, 0, tzinfo=timezone.utc)
TODAY = NOW.date()
TOMORROW = TODAY + timedelta(days=1)
YESTERDAY = TODAY - timedelta(days=1)


def fixed_clock() -> datetime:
    return NOW


def booking_payload(**overrides) -> dict:
    payload = {
        "date": TOMORROW.isoformat(),
        "time": "19:00",
        "guests": 4,
        "name": "A",
        "email": "a@b.com",
        "phone": "+1",
    }
    payload.update(overrides)
    return payload


async def _sqlite_store(tmp_path, tables) -> tuple[SqlAlchemyBookingStore, object]:
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'bookings.db'}")
    await create_schema(engine)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    store = SqlAlchemyBookingStore(factory)
    await store.add_tables(tables)
    return store, engine


@pytest.fixture
def valid_payload() -> dict:
    return booking_payload()


@pytest.fixture
def make_payload():
    """Build a booking request for tomorrow at 19:00, with overrides."""
    return booking_payload


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock():
    return fixed_clock


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def tomorrow() -> date:
    return TOMORROW


@pytest.fixture
def yesterday() -> date:
    return YESTERDAY


@pytest_asyncio.fixture
async def memory_store() -> InMemoryBookingStore:
    """In-memory store seeded with the default 15-table floor plan."""
    store = InMemoryBookingStore()
    await store.add_tables(DEFAULT_TABLES)
    return store


@pytest_asyncio.fixture
async def sql_store(tmp_path) -> AsyncGenerator[SqlAlchemyBookingStore, None]:
    """SQLite-backed store seeded with the default floor plan."""
    store, engine = await _sqlite_store(tmp_path, DEFAULT_TABLES)
    yield store
    await engine.dispose()


@pytest_asyncio.fixture(params=["memory", "sql"])
async def store(request, tmp_path) -> AsyncGenerator[BookingStore, None]:
    """Every store implementation, for contract tests."""
    if request.param == "memory":
        memory = InMemoryBookingStore()
        await memory.add_tables(DEFAULT_TABLES)
        yield memory
        return

    sql, engine = await _sqlite_store(tmp_path, DEFAULT_TABLES)
    yield sql
    await engine.dispose()


@pytest_asyncio.fixture
async def service(memory_store: InMemoryBookingStore) -> BookingService:
    return BookingService(memory_store, get_settings(), clock=fixed_clock)


@pytest_asyncio.fixture
async def single_table_service() -> BookingService:
    """A restaurant with exactly one table that seats four."""
    store = InMemoryBookingStore()
    await store.add_tables([TableCreate(table_number="T01", capacity=4)])
    return BookingService(store, get_settings(), clock=fixed_clock)


@pytest_asyncio.fixture
async def client(service: BookingService) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client wired to the in-memory booking service."""
    app.dependency_overrides[get_booking_service] = lambda: service

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()

