"""Redis caching utilities for HempTrack.

Only immutable data is cached: the summary of a completed stocktake never
changes once the session is closed, so it can be served from Redis without
invalidation.  If Redis is unreachable, callers fall back to the database.
"""

import json
import logging
from typing import Any, Optional

import redis.asyncio as redis
from app.config import settings

logger = logging.getLogger(__name__)

# Global Redis connection pool
_redis_client: Optional[redis.Redis] = None


async def get_redis() -> redis.Redis:
    """Get or create Redis client connection."""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=50,
        )
    return _redis_client


async def close_redis():
    """Close Redis connection (call on app shutdown)."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


def summary_key(session_id: str) -> str:
    return f"inventory:summary:{session_id}"


async def cache_get_json(key: str) -> Any | None:
    """Return the decoded cached value, or None on miss / Redis failure."""
    if not settings.cache_enabled:
        return None
    try:
        redis_client = await get_redis()
        cached_value = await redis_client.get(key)
    except redis.RedisError as e:
        logger.warning(f"Redis error (falling back to uncached): {e}")
        return None

    if cached_value is None:
        logger.debug(f"Cache MISS: {key}")
        return None
    logger.debug(f"Cache HIT: {key}")
    return json.loads(cached_value)


async def cache_set_json(key: str, value: Any, ttl: int) -> bool:
    """Store a JSON-serializable value.  Returns False if Redis is unavailable."""
    if not settings.cache_enabled:
        return False
    try:
        redis_client = await get_redis()
        await redis_client.setex(key, ttl, json.dumps(value))
        return True
    except redis.RedisError as e:
        logger.warning(f"Failed to cache {key}: {e}")
        return False
