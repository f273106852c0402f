"""
Redis caching service for showtime listings and seat maps.

CACHING STRATEGY
================

What we cache:
  - Showtime listing responses (paginated, JSON-serialized)
    key: "showtimes:list:page={page}&size={size}&upcoming={upcoming}"
  - Occupied seat maps per screening
    key: "seats:occupied:{showtime_id}:{movie_title}:pending={bool}"

Invalidation strategy:
  - New showtime: delete all listing keys
  - Any booking status change (proof upload, approval, rejection, cancel,
    expiry): delete every seat map key of that showtime
  - TTL as a safety net; seat maps get a short one (REDIS_SEAT_CACHE_TTL)
    because a stale map only costs a customer a later conflict, never a
    double confirmation. Approval always re-reads the database.

Both use prefix SCAN + DELETE; the per-showtime keyspace is tiny.
"""

import json
from typing import Optional

import redis.asyncio as redis
from cinema_booking.core.config import get_settings
from cinema_booking.core.logging import get_logger
from cinema_booking.core.metrics import record_cache_operation

logger = get_logger(__name__)
settings = get_settings()

_redis_client: Optional[redis.Redis] = None


async def get_redis() -> Optional[redis.Redis]:
    """Get or create Redis connection. Returns None if Redis is disabled."""
    global _redis_client

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
        await _redis_client.aclose()
        _redis_client = None


async def _get_json(key: str) -> Optional[dict]:
    client = await get_redis()
    if not client:
        return None
    try:
        data = await client.get(key)
        record_cache_operation("get", hit=bool(data))
        if data:
            logger.debug("cache_hit", key=key)
            return json.loads(data)
        logger.debug("cache_miss", key=key)
    except Exception as e:
        logger.error("cache_get_error", key=key, error=str(e))
    return None


async def _set_json(key: str, ttl: int, data) -> None:
    client = await get_redis()
    if not client:
        return
    try:
        await client.setex(key, ttl, json.dumps(data, default=str))
        logger.debug("cache_set", key=key, ttl=ttl)
    except Exception as e:
        logger.error("cache_set_error", key=key, error=str(e))


async def _delete_prefix(pattern: str) -> int:
    client = await get_redis()
    if not client:
        return 0
    deleted = 0
    try:
        async for key in client.scan_iter(match=pattern, count=100):
            await client.delete(key)
            deleted += 1
        logger.info("cache_invalidated", pattern=pattern, keys_deleted=deleted)
    except Exception as e:
        logger.error("cache_invalidation_error", pattern=pattern, error=str(e))
    return deleted


# Showtime listings

def _make_showtime_list_key(page: int, page_size: int, upcoming_only: bool) -> str:
    return f"showtimes:list:page={page}&size={page_size}&upcoming={upcoming_only}"


async def get_cached_showtimes(page: int, page_size: int, upcoming_only: bool) -> Optional[dict]:
    return await _get_json(_make_showtime_list_key(page, page_size, upcoming_only))


async def set_cached_showtimes(page: int, page_size: int, upcoming_only: bool, data: dict) -> None:
    await _set_json(_make_showtime_list_key(page, page_size, upcoming_only), settings.REDIS_CACHE_TTL, data)


async def invalidate_showtime_cache() -> None:
    await _delete_prefix("showtimes:list:*")


# Seat maps

def _make_seat_key(showtime_id: int, movie_title: str, include_pending: bool) -> str:
    return f"seats:occupied:{showtime_id}:{movie_title}:pending={include_pending}"


async def get_cached_occupied_seats(
    showtime_id: int, movie_title: str, include_pending: bool
) -> Optional[list[str]]:
    data = await _get_json(_make_seat_key(showtime_id, movie_title, include_pending))
    if data is None:
        return None
    return list(data.get("seats", []))


async def set_cached_occupied_seats(
    showtime_id: int, movie_title: str, include_pending: bool, seats: list[str]
) -> None:
    await _set_json(
        _make_seat_key(showtime_id, movie_title, include_pending),
        settings.REDIS_SEAT_CACHE_TTL,
        {"seats": seats},
    )


async def invalidate_seat_cache(showtime_id: int) -> None:
    await _delete_prefix(f"seats:occupied:{showtime_id}:*")


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
