"""
Cache Utility Module

Redis-backed cache for geolocation lookups and read-side summaries.
When Redis is unreachable the cache disables itself and every call is a
miss; a reconnect is attempted after a cooldown.
"""

import json
import logging
import time
from typing import Any

import redis.asyncio as redis

from analytics_engine.config import settings
from analytics_engine.utils.metrics import REDIS_CONNECTED, record_cache_hit, record_cache_miss

logger = logging.getLogger(__name__)

RETRY_COOLDOWN_SECONDS = 30


class CacheManager:
    """
    Manages Redis-based caching for the analytics engine.

    Provides:
    - Key-value caching with TTL
    - Prefix invalidation
    """

    # Cache key prefixes
    PREFIX_GEOLOCATION = "geolocation:"
    PREFIX_SUMMARY = "cache:analytics:summary:"

    # Default TTLs in seconds
    TTL_MEDIUM = 300
    TTL_ANALYTICS = 120

    def __init__(self):
        self._redis: redis.Redis | None = None
        self._pool: redis.ConnectionPool | None = None
        self._enabled = True
        self._last_connect_attempt: float = 0

    @property
    def enabled(self) -> bool:
        return self._enabled

    async def connect(self) -> None:
        """Establish connection to Redis from redis_url or individual params."""
        if self._redis is not None:
            return

        self._last_connect_attempt = time.time()

        try:
            if settings.redis_url:
                self._pool = redis.ConnectionPool.from_url(
                    settings.redis_url,
                    decode_responses=True,
                )
            else:
                self._pool = redis.ConnectionPool(
                    host=settings.redis_host,
                    port=settings.redis_port,
                    db=settings.redis_db,
                    password=settings.redis_password,
                    decode_responses=True,
                )

            self._redis = redis.Redis(connection_pool=self._pool)
            await self._redis.ping()
            REDIS_CONNECTED.labels(role="cache").set(1)
            logger.info("Cache: Successfully connected to Redis")
        except Exception as e:
            REDIS_CONNECTED.labels(role="cache").set(0)
            logger.warning(f"Cache: Failed to connect to Redis: {e}. Caching disabled.")
            self._redis = None
            self._enabled = False

    async def disconnect(self) -> None:
        """Close Redis connection"""
        if self._redis:
            await self._redis.aclose()
            self._redis = None
        if self._pool:
            await self._pool.aclose()
            self._pool = None
        logger.info("Cache: Disconnected from Redis")

    async def _maybe_retry_connect(self) -> None:
        if not self._enabled and time.time() - self._last_connect_attempt >= RETRY_COOLDOWN_SECONDS:
            logger.info("Cache: retrying Redis connection after cooldown...")
            self._redis = None
            self._pool = None
            self._enabled = True
            await self.connect()

    async def get(self, key: str) -> Any | None:
        """
        Get a cached value by key.

        Args:
            key: Cache key

        Returns:
            Cached value or None if not found
        """
        await self._maybe_retry_connect()
        if not self._enabled:
            return None

        try:
            if not self._redis:
                await self.connect()
            if not self._redis:
                return None

            data = await self._redis.get(key)
            if data:
                logger.debug(f"Cache HIT: {key}")
                record_cache_hit("redis")
                return json.loads(data)

            logger.debug(f"Cache MISS: {key}")
            record_cache_miss("redis")
            return None
        except Exception as e:
            logger.warning(f"Cache get error for {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """
        Set a cached value with optional TTL.

        Args:
            key: Cache key
            value: Value to cache (must be JSON serializable)
            ttl: Time to live in seconds (default: TTL_MEDIUM)

        Returns:
            True if successful, False otherwise
        """
        await self._maybe_retry_connect()
        if not self._enabled:
            return False

        try:
            if not self._redis:
                await self.connect()
            if not self._redis:
                return False

            ttl = ttl or self.TTL_MEDIUM
            await self._redis.setex(key, ttl, json.dumps(value, default=str))
            logger.debug(f"Cache SET: {key} (TTL: {ttl}s)")
            return True
        except Exception as e:
            logger.warning(f"Cache set error for {key}: {e}")
            return False

    async def delete(self, key: str) -> bool:
        if not self._enabled or not self._redis:
            return False

        try:
            await self._redis.delete(key)
            logger.debug(f"Cache DELETE: {key}")
            return True
        except Exception as e:
            logger.warning(f"Cache delete error for {key}: {e}")
            return False

    async def delete_pattern(self, pattern: str) -> int:
        """
        Delete all keys matching a pattern.

        Args:
            pattern: Key pattern (e.g., "cache:analytics:*")

        Returns:
            Number of keys deleted
        """
        if not self._enabled or not self._redis:
            return 0

        try:
            keys = [key async for key in self._redis.scan_iter(match=pattern)]
            if keys:
                deleted = await self._redis.delete(*keys)
                logger.info(f"Cache DELETE PATTERN: {pattern} ({deleted} keys)")
                return deleted
            return 0
        except Exception as e:
            logger.warning(f"Cache delete pattern error for {pattern}: {e}")
            return 0

    async def invalidate_summary(self, entity_type: str, entity_id: str | None = None) -> int:
        """Drop cached summaries for one entity, or for every entity of a type."""
        if entity_id is not None:
            deleted = await self.delete(f"{self.PREFIX_SUMMARY}{entity_type}:{entity_id}")
            return 1 if deleted else 0
        return await self.delete_pattern(f"{self.PREFIX_SUMMARY}{entity_type}:*")


# Global cache manager instance
cache_manager = CacheManager()


async def get_cache_manager() -> CacheManager:
    """
    Dependency to get the cache manager instance.
    Ensures Redis connection is established.
    """
    if cache_manager._redis is None and cache_manager._enabled:
        await cache_manager.connect()
    return cache_manager
