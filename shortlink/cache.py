"""Cache-aside accelerator for token -> URL lookups.

Entries hold only the ``url_token -> original_url`` projection of a mapping.
They are never authoritative for existence: a miss means "ask the store".
"""

import logging

import redis.asyncio as redis
from redis.exceptions import RedisError

from shortlink.errors import CacheUnavailableError, TokenNotFoundError

__all__ = ["MappingCache"]

logger = logging.getLogger(__name__)


class MappingCache:
    def __init__(self, client: redis.Redis, key_prefix: str = "url:", ttl_seconds: int = 0) -> None:
        self._client = client
        self._key_prefix = key_prefix
        self._ttl_seconds = ttl_seconds

    def _key(self, url_token: str) -> str:
        return f"{self._key_prefix}{url_token}"

    async def get_original_url(self, url_token: str) -> str | None:
        """Cached URL for a token, or None on a miss.

        Redis failures are logged and reported as a miss.
        """
        try:
            return await self._client.get(self._key(url_token))
        except RedisError:
            logger.error("Cache read failed for token %s", url_token, exc_info=True)
            return None

    async def set_mapping(self, original_url: str, url_token: str) -> None:
        try:
            await self._client.set(self._key(url_token), original_url, ex=self._ttl_seconds or None)
        except RedisError as exc:
            raise CacheUnavailableError(f"caching token {url_token}") from exc

    async def delete_mapping(self, url_token: str) -> None:
        """Drop a cached entry.

        Raises:
            TokenNotFoundError: If nothing was cached for the token.
            CacheUnavailableError: If Redis cannot be reached.
        """
        try:
            deleted = await self._client.delete(self._key(url_token))
        except RedisError as exc:
            raise CacheUnavailableError(f"deleting cached token {url_token}") from exc
        if deleted == 0:
            raise TokenNotFoundError(f"URL token not found in cache: {url_token}")

    async def ping(self) -> None:
        await self._client.ping()
