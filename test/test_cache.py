"""
Tests for the Redis cache manager.
"""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from analytics_engine.utils.cache import CacheManager


def make_manager(redis_client) -> CacheManager:
    cm = CacheManager()
    cm._enabled = True
    cm._redis = redis_client
    return cm


class TestCacheManager:
    """Tests for key-value operations against a mocked Redis client."""

    @pytest.mark.asyncio
    async def test_get_decodes_json(self):
        """Test that cached JSON is decoded."""
        mock_redis = MagicMock()
        mock_redis.get = AsyncMock(return_value='{"country": "Germany"}')
        cm = make_manager(mock_redis)

        assert await cm.get("geolocation:1.2.3.4") == {"country": "Germany"}

    @pytest.mark.asyncio
    async def test_set_uses_default_ttl(self):
        """Test that set falls back to the medium TTL."""
        mock_redis = MagicMock()
        mock_redis.setex = AsyncMock()
        cm = make_manager(mock_redis)

        assert await cm.set("key", {"a": 1}) is True
        mock_redis.setex.assert_awaited_once_with("key", CacheManager.TTL_MEDIUM, json.dumps({"a": 1}))

    @pytest.mark.asyncio
    async def test_errors_are_misses(self):
        """Test that Redis errors never escape."""
        mock_redis = MagicMock()
        mock_redis.get = AsyncMock(side_effect=ConnectionError("down"))
        mock_redis.setex = AsyncMock(side_effect=ConnectionError("down"))
        cm = make_manager(mock_redis)

        assert await cm.get("key") is None
        assert await cm.set("key", 1) is False

    @pytest.mark.asyncio
    async def test_disabled_cache(self):
        """Test that a disabled cache is a permanent miss until the cooldown passes."""
        cm = CacheManager()
        cm._enabled = False
        cm._last_connect_attempt = float("inf")

        assert await cm.get("key") is None
        assert await cm.set("key", 1) is False
        assert await cm.delete("key") is False
        assert await cm.delete_pattern("key*") == 0

    @pytest.mark.asyncio
    async def test_failed_connect_disables_cache(self):
        """Test that an unreachable Redis disables caching."""
        cm = CacheManager()
        with patch("analytics_engine.utils.cache.redis.Redis") as redis_cls:
            redis_cls.return_value.ping = AsyncMock(side_effect=ConnectionError("refused"))
            await cm.connect()

        assert cm.enabled is False
        assert cm._redis is None


class TestSummaryInvalidation:
    """Tests for summary cache invalidation."""

    @pytest.mark.asyncio
    async def test_single_entity(self):
        """Test invalidating one entity's summary."""
        mock_redis = MagicMock()
        mock_redis.delete = AsyncMock(return_value=1)
        cm = make_manager(mock_redis)

        assert await cm.invalidate_summary("article", "42") == 1
        mock_redis.delete.assert_awaited_once_with("cache:analytics:summary:article:42")

    @pytest.mark.asyncio
    async def test_whole_type(self):
        """Test invalidating every summary of a type by pattern."""

        async def scan_iter(match):
            assert match == "cache:analytics:summary:article:*"
            for key in ("cache:analytics:summary:article:1", "cache:analytics:summary:article:2"):
                yield key

        mock_redis = MagicMock()
        mock_redis.scan_iter = scan_iter
        mock_redis.delete = AsyncMock(return_value=2)
        cm = make_manager(mock_redis)

        assert await cm.invalidate_summary("article") == 2
        mock_redis.delete.assert_awaited_once_with(
            "cache:analytics:summary:article:1", "cache:analytics:summary:article:2"
        )
