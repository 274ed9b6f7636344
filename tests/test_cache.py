"""Unit tests for the Redis mapping cache."""

from unittest.mock import AsyncMock

import pytest
import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError

from shortlink.cache import MappingCache
from shortlink.errors import CacheUnavailableError, TokenNotFoundError


@pytest.fixture
def mock_redis() -> AsyncMock:
    """Mock Redis client."""
    redis_client = AsyncMock(spec=redis.Redis)
    redis_client.get = AsyncMock(return_value=None)
    redis_client.set = AsyncMock(return_value=True)
    redis_client.delete = AsyncMock(return_value=1)
    return redis_client


class TestMappingCache:
    """Test suite for MappingCache."""

    @pytest.mark.asyncio
    async def test_get_hit(self, mock_redis):
        mock_redis.get.return_value = "https://a.example/x"
        cache = MappingCache(mock_redis)

        assert await cache.get_original_url("b") == "https://a.example/x"
        mock_redis.get.assert_awaited_once_with("url:b")

    @pytest.mark.asyncio
    async def test_get_miss(self, mock_redis):
        cache = MappingCache(mock_redis)
        assert await cache.get_original_url("b") is None

    @pytest.mark.asyncio
    async def test_get_error_is_a_miss(self, mock_redis):
        """Redis outages on read degrade to a miss."""
        mock_redis.get.side_effect = RedisConnectionError("refused")
        cache = MappingCache(mock_redis)

        assert await cache.get_original_url("b") is None

    @pytest.mark.asyncio
    async def test_set_without_ttl(self, mock_redis):
        cache = MappingCache(mock_redis, key_prefix="links:")

        await cache.set_mapping("https://a.example/x", "b")

        mock_redis.set.assert_awaited_once_with("links:b", "https://a.example/x", ex=None)

    @pytest.mark.asyncio
    async def test_set_with_ttl(self, mock_redis):
        cache = MappingCache(mock_redis, ttl_seconds=60)

        await cache.set_mapping("https://a.example/x", "b")

        mock_redis.set.assert_awaited_once_with("url:b", "https://a.example/x", ex=60)

    @pytest.mark.asyncio
    async def test_set_error(self, mock_redis):
        mock_redis.set.side_effect = RedisConnectionError("refused")
        cache = MappingCache(mock_redis)

        with pytest.raises(CacheUnavailableError):
            await cache.set_mapping("https://a.example/x", "b")

    @pytest.mark.asyncio
    async def test_delete(self, mock_redis):
        cache = MappingCache(mock_redis)
        await cache.delete_mapping("b")
        mock_redis.delete.assert_awaited_once_with("url:b")

    @pytest.mark.asyncio
    async def test_delete_absent_key(self, mock_redis):
        mock_redis.delete.return_value = 0
        cache = MappingCache(mock_redis)

        with pytest.raises(TokenNotFoundError, match="URL token not found in cache: b"):
            await cache.delete_mapping("b")

    @pytest.mark.asyncio
    async def test_delete_error(self, mock_redis):
        mock_redis.delete.side_effect = RedisConnectionError("refused")
        cache = MappingCache(mock_redis)

        with pytest.raises(CacheUnavailableError):
            await cache.delete_mapping("b")
