"""Restart-safe id allocation over a Redis counter.

Startup protocol::

    MappingStore.get_last_id()  ──►  SET mapping_count <last_id>
                                          │
    get_next_id()  ──────────────────►  INCR mapping_count  ──►  last_id + 1, + 2, ...

Seeding and the first increment are not atomic with respect to other writers
of the mappings table. Exactly one allocator must be created, before the
service accepts traffic. Ids stay unique only while Redis preserves the
counter value (including across a failover).
"""

import logging
from typing import Protocol

import redis.asyncio as redis
from redis.exceptions import RedisError

from shortlink.errors import CounterUnavailableError

__all__ = ["IdAllocator", "LastIdSource"]

logger = logging.getLogger(__name__)


class LastIdSource(Protocol):
    async def get_last_id(self) -> int: ...


class IdAllocator:
    """Hands out unique, increasing mapping ids.

    Build it with :meth:`create` so the counter is seeded from the durable
    store; the plain constructor assumes the counter is already seeded.
    """

    def __init__(self, counter: redis.Redis, key: str = "mapping_count") -> None:
        self._counter = counter
        self._key = key

    @classmethod
    async def create(
        cls,
        counter: redis.Redis,
        last_id_source: LastIdSource,
        key: str = "mapping_count",
    ) -> "IdAllocator":
        last_id = await last_id_source.get_last_id()
        try:
            await counter.set(key, last_id)
        except RedisError as exc:
            raise CounterUnavailableError("setting mapping count in redis") from exc
        logger.info("Id counter %s seeded at %d", key, last_id)
        return cls(counter, key)

    async def get_next_id(self) -> int:
        try:
            return int(await self._counter.incr(self._key))
        except RedisError as exc:
            raise CounterUnavailableError(f"incrementing {self._key}") from exc
