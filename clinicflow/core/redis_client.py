"""Redis client configuration and utilities."""

import json
from typing import Any, cast

import structlog
from redis import asyncio as aioredis

from clinicflow.config import settings

logger = structlog.get_logger(__name__)

# Global Redis client instance
_redis_client: aioredis.Redis | None = None


def get_redis_client() -> aioredis.Redis:
    """
    Get or create Redis client instance.

    The client connects lazily, so creating it never blocks or fails.

    Returns:
        Redis client instance
    """
    global _redis_client

    if _redis_client is None:
        _redis_client = aioredis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            db=settings.redis_db,
            username=settings.redis_username,
            password=settings.redis_password or None,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            socket_keepalive=True,
            health_check_interval=30,
        )

    return _redis_client


async def check_redis_connection() -> bool:
    """
    Check if Redis connection is healthy.

    Returns:
        True if connection is healthy, False otherwise
    """
    try:
        client = get_redis_client()
        await client.ping()
        return True
    except Exception:
        return False


async def close_redis_connection() -> None:
    """Close Redis connection."""
    global _redis_client

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None


class CacheManager:
    """Redis-based cache manager.

    Every operation degrades to a cache miss (or a ``False`` result) when Redis is
    unreachable, so callers can always fall back to the database.
    """

    def __init__(self, redis_client: aioredis.Redis):
        """Initialize cache manager with Redis client."""
        self.redis = redis_client

    async def get_json(self, key: str) -> Any | None:
        """
        Get JSON value from cache and deserialize.

        Args:
            key: Cache key

        Returns:
            Deserialized object or None
        """
        try:
            value = cast(str | None, await self.redis.get(key))
            if value:
                return json.loads(value)
            return None
        except Exception as e:
            logger.debug("cache_get_failed", key=key, error=str(e))
            return None

    async def set_json(
        self,
        key: str,
        value: Any,
        ttl: int | None = None,
    ) -> bool:
        """
        Serialize and set JSON value in cache.

        Args:
            key: Cache key
            value: Value to serialize and cache
            ttl: Time to live in seconds

        Returns:
            True if successful, False otherwise
        """
        try:
            json_value = json.dumps(value, default=str)
            if ttl:
                await self.redis.setex(key, ttl, json_value)
            else:
                await self.redis.set(key, json_value)
            return True
        except Exception as e:
            logger.debug("cache_set_failed", key=key, error=str(e))
            return False
