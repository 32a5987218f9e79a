"""
Cache Service Singleton - Validation Hub
validation_hub/services/cache.py

Provides the persisted-tier singleton with TTL constants.
Gracefully handles Redis unavailability.
"""
import logging
from typing import Optional

import redis

from validation_hub.config import settings
from validation_hub.services.redis_cache import RedisCache

logger = logging.getLogger(__name__)

# TTL constants (in minutes)
TTL_PERSISTED = settings.PERSISTED_TTL_MINUTES
TTL_EPHEMERAL = settings.EPHEMERAL_TTL_MINUTES

# Singleton instance
_cache: Optional[RedisCache] = None


def get_cache() -> Optional[RedisCache]:
    """
    Get or create the persisted cache instance.

    Returns:
        RedisCache instance if Redis is enabled and reachable, None otherwise.

    Note:
        Returns None if Redis is unavailable, letting the resolver fall back
        to the ephemeral tier and the provider (graceful degradation).
    """
    global _cache
    if not settings.PERSISTED_CACHE_ENABLED:
        return None
    if _cache is None:
        try:
            _cache = RedisCache()
            _cache.client.ping()  # Test connection
        except (redis.RedisError, ConnectionError) as e:
            logger.warning("Persisted cache unavailable: %s", e)
            _cache = None
    return _cache


def reset_cache() -> None:
    """
    Reset the cache singleton.

    Useful for testing or when the Redis connection needs to be re-established.
    """
    global _cache
    _cache = None
