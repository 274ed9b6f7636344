"""Shared Redis connection for the id counter and the mapping cache.

One client (and its connection pool) serves both Redis roles:

::
    ┌──────────────────┐        ┌──────────────────────────┐
    │ IdAllocator      │─INCR──►│                          │
    │ mapping_count    │        │  redis.asyncio.Redis     │
    └──────────────────┘        │  (pooled, str replies)   │
    ┌──────────────────┐        │                          │
    │ MappingCache     │─GET───►│                          │
    │ url:<token>      │─SET/DEL│                          │
    └──────────────────┘        └──────────────────────────┘

The counter must survive cache evictions, so deployments running with an
eviction policy should point ``REDIS_URL`` at a database where the counter key
is not evictable.
"""

import redis.asyncio as redis

from shortlink.config import get_settings

__all__ = ["close_redis", "get_redis"]

settings = get_settings()

redis_client: redis.Redis | None = None


async def get_redis() -> redis.Redis:
    """Lazily create the process-wide client."""
    global redis_client
    if redis_client is None:
        redis_client = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
            socket_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
        )
    return redis_client


async def close_redis() -> None:
    global redis_client
    if redis_client is None:
        return
    await redis_client.aclose()
    redis_client = None
