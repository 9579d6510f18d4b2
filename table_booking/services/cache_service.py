"""
Redis caching service for daily booking reports.

CACHING STRATEGY
================

What we cache:
  - Daily summary reports (JSON-serialized DailySummary)
  - Cache key pattern: "reports:daily:{YYYY-MM-DD}"

Why:
  - Front-of-house dashboards poll the daily report constantly
  - The data only changes when a booking is written

Invalidation strategy:
  - Every booking write (create, update, cancel, delete) deletes all
    "reports:daily:*" keys. A reschedule can touch two dates, so we do not
    try to be precise.
  - TTL-based expiry as safety net

Why NOT cache availability:
  - Availability decides which table a guest gets; a stale answer would
    send every request to a table that is already taken. Availability
    always reads the store.

Redis is optional: when disabled or unreachable every call degrades to a
cache miss and the report is computed from the store.
"""

import json
from datetime import date
from typing import Optional

import redis.asyncio as redis

from table_booking.core.config import get_settings
from table_booking.core.logging import get_logger
from table_booking.core.metrics import record_cache_operation

logger = get_logger(__name__)

REPORT_KEY_PREFIX = "reports:daily:"

_redis_client: Optional[redis.Redis] = None


async def get_redis() -> Optional[redis.Redis]:
    """Get or create Redis connection. Returns None if Redis is disabled."""
    global _redis_client
    settings = get_settings()

    if not settings.REDIS_ENABLED:
        return None

    if _redis_client is None:
        try:
            _redis_client = redis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
            )
            # Test connection
            await _redis_client.ping()
            logger.info("redis_connected", url=settings.REDIS_URL)
        except Exception as e:
            logger.error("redis_connection_failed", error=str(e))
            _redis_client = None
            return None

    return _redis_client


async def close_redis() -> None:
    """Close Redis connection on shutdown."""
    global _redis_client
    if _redis_client:
        await _redis_client.close()
        _redis_client = None


def _make_report_key(booking_date: date) -> str:
    return f"{REPORT_KEY_PREFIX}{booking_date.isoformat()}"


async def get_cached_report(booking_date: date) -> Optional[dict]:
    """Retrieve a cached daily report."""
    client = await get_redis()
    if not client:
        return None

    key = _make_report_key(booking_date)
    try:
        data = await client.get(key)
        if data:
            record_cache_operation("get", hit=True)
            logger.debug("cache_hit", key=key)
            return json.loads(data)
        record_cache_operation("get", hit=False)
        logger.debug("cache_miss", key=key)
    except Exception as e:
        logger.error("cache_get_error", key=key, error=str(e))

    return None


async def set_cached_report(booking_date: date, data: dict) -> None:
    """Cache a daily report with TTL."""
    client = await get_redis()
    if not client:
        return

    settings = get_settings()
    key = _make_report_key(booking_date)
    try:
        await client.setex(key, settings.REDIS_CACHE_TTL, json.dumps(data, default=str))
        logger.debug("cache_set", key=key, ttl=settings.REDIS_CACHE_TTL)
    except Exception as e:
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_report_cache() -> None:
    """
    Invalidate all cached daily reports.
    Uses SCAN to find and delete all keys matching the prefix.
    """
    client = await get_redis()
    if not client:
        return

    try:
        deleted = 0
        async for key in client.scan_iter(match=f"{REPORT_KEY_PREFIX}*", count=100):
            await client.delete(key)
            deleted += 1
        logger.info("cache_invalidated", keys_deleted=deleted)
    except Exception as e:
        logger.error("cache_invalidation_error", error=str(e))


async def get_cache_stats() -> dict:
    """Get Redis cache statistics for monitoring."""
    client = await get_redis()
    if not client:
        return {"status": "disabled"}

    try:
        info = await client.info("stats")
        hits = info.get("keyspace_hits", 0)
        misses = info.get("keyspace_misses", 0)
        return {
            "status": "connected",
            "hits": hits,
            "misses": misses,
            "hit_rate": round(hits / max(hits + misses, 1) * 100, 2),
        }
    except Exception as e:
        return {"status": "error", "error": str(e)}
