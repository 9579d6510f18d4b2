"""
Table Booking API - Main Application Entry Point

A restaurant table-booking service demonstrating:
- Smallest-fit table assignment with race-safe slot reservation
- A storage abstraction with in-memory and SQLAlchemy implementations
- Structured logging with request correlation
- Redis-cached daily reports with write-through invalidation
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from table_booking.api.errors import register_error_handlers
from table_booking.api.middleware import RequestLoggingMiddleware
from table_booking.api.router import api_router
from table_booking.core.config import Settings, get_settings
from table_booking.core.logging import get_logger, setup_logging
from table_booking.core.metrics import metrics_endpoint
from table_booking.db.session import create_schema, dispose_engine, get_engine, get_session_factory
from table_booking.infrastructure.memory_store import InMemoryBookingStore
from table_booking.infrastructure.sql_store import SqlAlchemyBookingStore
from table_booking.services.booking_service import BookingService
from table_booking.services.cache_service import close_redis, get_cache_stats, get_redis
from table_booking.services.interfaces.booking_store import BookingStore

settings = get_settings()


async def build_store(settings: Settings) -> BookingStore:
    if settings.STORE_BACKEND == "memory":
        return InMemoryBookingStore()
    if settings.STORE_BACKEND == "sql":
        if settings.CREATE_SCHEMA_ON_STARTUP:
            await create_schema(get_engine())
        return SqlAlchemyBookingStore(get_session_factory())
    raise ValueError(f"Unknown STORE_BACKEND {settings.STORE_BACKEND!r}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()
    logger = get_logger(__name__)

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        store=settings.STORE_BACKEND,
    )

    store = await build_store(settings)
    service = BookingService(store, settings)
    if settings.SEED_DEFAULT_TABLES:
        await service.seed_default_tables()
    app.state.booking_service = service

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Running without report cache")

    yield

    await close_redis()
    await dispose_engine()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Restaurant table booking API with double-booking-safe reservations",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

register_error_handlers(app)
app.include_router(api_router)


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    cache_stats = await get_cache_stats()
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "cache": cache_stats,
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
async def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
