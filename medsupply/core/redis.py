"""
Redis helpers for reference data caching.

Only slow-changing lookups (department and cabinet names shown on report
filters) go through here. Report rows are recomputed on every request.
The app keeps working without Redis (degraded mode: lookups hit the DB).
"""

import logging
from functools import lru_cache
from typing import Callable, Optional

import redis

from medsupply.core.config import get_settings

logger = logging.getLogger(__name__)

REFERENCE_KEY_PREFIX = "medsupply:ref"
# Stored for lookups that found nothing, so misses are cached too.
_MISSING = "\x00"


@lru_cache
def get_redis_client() -> Optional[redis.Redis]:
    """
    Get Redis client instance.
    Returns None if Redis is not configured or unreachable at first use.
    """
    settings = get_settings()

    if not settings.redis_url:
        logger.warning("REDIS_URL not set. Reference caching disabled.")
        return None

    try:
        client = redis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        client.ping()
    except redis.RedisError as e:
        logger.warning("Failed to connect to Redis: %s. Running without cache.", e)
        return None

    logger.info("Redis connection established for reference cache.")
    return client


def reference_key(kind: str, ref_id: object) -> str:
    return f"{REFERENCE_KEY_PREFIX}:{kind}:{ref_id}"


def cached_reference(
    kind: str,
    ref_id: object,
    loader: Callable[[], Optional[str]],
    ttl: Optional[int] = None,
) -> Optional[str]:
    """
    Return the cached value for (kind, ref_id), calling loader on a miss.

    Redis errors are logged and fall through to the loader; loader errors
    propagate to the caller untouched.
    """
    client = get_redis_client()
    key = reference_key(kind, ref_id)

    if client is not None:
        try:
            cached = client.get(key)
        except redis.RedisError as e:
            logger.warning("Redis GET error for key '%s': %s", key, e)
            cached = None
        if cached is not None:
            return None if cached == _MISSING else cached

    value = loader()

    if client is not None:
        ttl = ttl if ttl is not None else get_settings().reference_cache_ttl
        try:
            client.setex(key, ttl, _MISSING if value is None else value)
        except redis.RedisError as e:
            logger.warning("Redis SET error for key '%s': %s", key, e)

    return value
