"""Dependency injection with a singleton service manager.

The manager builds every long-lived component once at startup (clients,
stores, resolver, producer and the stats consumer) and the dependency
functions below hand them to route handlers. Tests replace the dependency
functions through ``app.dependency_overrides``.

Startup Order
=============
::
    logger ─► redis ─► MappingStore ─► IdAllocator.create (seed counter)
           ─► MappingCache ─► MappingResolver ─► EventProducer.start
           ─► stats backend ─► [IpLocator ─► StatsEventConsumer task]
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Optional, Protocol

from fastapi import Depends, Request

from shortlink.cache import MappingCache
from shortlink.config import get_settings
from shortlink.consumer import StatsEventConsumer
from shortlink.database import async_session
from shortlink.enricher import EventEnricher
from shortlink.enums import StatsBackend
from shortlink.geo import IpLocator
from shortlink.id_allocator import IdAllocator
from shortlink.kafka import EventProducer
from shortlink.mapping_store import MappingStore
from shortlink.redis import close_redis, get_redis
from shortlink.resolver import MappingResolver
from shortlink.schemas import AggregateStats
from shortlink.stats_aggregator import ClickHouseStatsAggregator, SqlStatsAggregator
from shortlink.stats_processor import StatsProcessor
from shortlink.stats_storage import ClickHouseStatsStorage, SqlStatsStorage, create_clickhouse_client

__all__ = [
    "RequestContext",
    "ServiceManager",
    "StatisticsCalculator",
    "get_event_producer",
    "get_mapping_cache",
    "get_mapping_store",
    "get_request_context",
    "get_resolver",
    "get_service_manager",
    "get_stats_aggregator",
]

CONSUMER_SHUTDOWN_TIMEOUT_SECONDS = 10.0


class StatisticsCalculator(Protocol):
    async def calculate_statistics(self, url_token: str) -> AggregateStats: ...


# ============================================================================
# SINGLETON SERVICE MANAGER
# ============================================================================


class ServiceManager:
    """Singleton owner of the shared clients and components."""

    _instance: Optional["ServiceManager"] = None
    _initialized: bool = False

    def __new__(cls) -> "ServiceManager":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    async def initialize(self) -> None:
        """Build the API components and, if enabled, start the stats consumer."""
        if self._initialized:
            return
        self.settings = get_settings()
        self.logger = self._setup_logger()
        self.redis_client = await get_redis()
        self.mapping_store = MappingStore(async_session)
        self.mapping_cache = MappingCache(
            self.redis_client,
            key_prefix=self.settings.CACHE_KEY_PREFIX,
            ttl_seconds=self.settings.CACHE_TTL_SECONDS,
        )
        self.id_allocator = await IdAllocator.create(
            self.redis_client, self.mapping_store, key=self.settings.ID_COUNTER_KEY
        )
        self.resolver = MappingResolver(self.mapping_store, self.mapping_cache, self.id_allocator)
        self.event_producer = EventProducer.from_settings(self.settings)
        await self.event_producer.start()
        await self._setup_stats_backend()
        if self.settings.CONSUMER_ENABLED:
            self.consumer_task = self._start_consumer()
        self._initialized = True
        self.logger.info("Service manager initialized")

    async def initialize_pipeline(self) -> asyncio.Task:
        """Build only the stats pipeline, for the standalone worker process."""
        self.settings = get_settings()
        self.logger = self._setup_logger()
        await self._setup_stats_backend()
        self.consumer_task = self._start_consumer()
        self._initialized = True
        return self.consumer_task

    def _setup_logger(self) -> logging.Logger:
        logger = logging.getLogger("shortlink")
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            handler.setFormatter(formatter)
            logger.addHandler(handler)
            logger.setLevel(self.settings.LOG_LEVEL)
        return logger

    async def _setup_stats_backend(self) -> None:
        if self.settings.STATS_BACKEND is StatsBackend.SQL:
            self.stats_storage = SqlStatsStorage(async_session)
            self.stats_aggregator = SqlStatsAggregator(async_session)
            return
        # Consumer writes and API reads each get their own connection pool.
        self.stats_storage = ClickHouseStatsStorage(create_clickhouse_client(self.settings))
        await self.stats_storage.ensure_schema()
        self.stats_aggregator = ClickHouseStatsAggregator(create_clickhouse_client(self.settings))

    def _start_consumer(self) -> asyncio.Task:
        self.ip_locator = IpLocator.open(self.settings.GEOIP_DB_PATH, self.settings.GEOIP_LOCALE)
        processor = StatsProcessor(EventEnricher(self.ip_locator), self.stats_storage)
        self.stats_consumer = StatsEventConsumer.from_settings(self.settings, processor)
        return asyncio.create_task(self.stats_consumer.start_consuming(), name="stats-consumer")

    async def cleanup(self) -> None:
        """Stop the consumer, then release clients in reverse startup order."""
        if hasattr(self, "stats_consumer"):
            self.stats_consumer.stop()
            try:
                await asyncio.wait_for(self.consumer_task, timeout=CONSUMER_SHUTDOWN_TIMEOUT_SECONDS)
            except asyncio.TimeoutError:
                self.logger.warning("Stats consumer did not stop in time, cancelled")
            del self.stats_consumer
        if hasattr(self, "ip_locator"):
            self.ip_locator.close()
            del self.ip_locator
        for component in (getattr(self, "stats_storage", None), getattr(self, "stats_aggregator", None)):
            if isinstance(component, (ClickHouseStatsStorage, ClickHouseStatsAggregator)):
                component.close()
        if hasattr(self, "event_producer"):
            await self.event_producer.stop()
        if hasattr(self, "redis_client"):
            await close_redis()
            del self.redis_client
        self._initialized = False


_service_manager = ServiceManager()


# ============================================================================
# LIGHTWEIGHT REQUEST CONTEXT
# ============================================================================


def extract_client_ip(request: Request) -> str:
    """Client address: first X-Forwarded-For hop, then X-Real-IP, then the peer."""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        first_hop = forwarded_for.split(",")[0].strip()
        if first_hop:
            return first_hop
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else ""


@dataclass
class RequestContext:
    """Per-request tracking data.

    Attributes:
        request_id: Unique identifier for this request
        client_ip: Client IP address (proxy headers honoured)
        user_agent: Client user agent string
        referrer: Referer header, empty when absent
        start_time: Request start timestamp
    """

    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    client_ip: str = ""
    user_agent: str = ""
    referrer: str = ""
    start_time: float = field(default_factory=time.time)

    @property
    def logger(self) -> logging.LoggerAdapter:
        return logging.LoggerAdapter(
            logging.getLogger("shortlink.routes"),
            {
                "request_id": self.request_id,
                "client_ip": self.client_ip,
                "user_agent": self.user_agent,
            },
        )

    def get_duration(self) -> float:
        """Get request duration in milliseconds."""
        return (time.time() - self.start_time) * 1000


# ============================================================================
# DEPENDENCY FUNCTIONS
# ============================================================================


async def get_service_manager() -> ServiceManager:
    if not _service_manager._initialized:
        await _service_manager.initialize()
    return _service_manager


async def get_request_context(request: Request) -> RequestContext:
    return RequestContext(
        request_id=request.headers.get("x-request-id") or str(uuid.uuid4()),
        client_ip=extract_client_ip(request),
        user_agent=request.headers.get("user-agent", ""),
        referrer=request.headers.get("referer", ""),
    )


async def get_resolver(manager: ServiceManager = Depends(get_service_manager)) -> MappingResolver:
    return manager.resolver


async def get_event_producer(manager: ServiceManager = Depends(get_service_manager)) -> EventProducer:
    return manager.event_producer


async def get_stats_aggregator(manager: ServiceManager = Depends(get_service_manager)) -> StatisticsCalculator:
    return manager.stats_aggregator


async def get_mapping_store(manager: ServiceManager = Depends(get_service_manager)) -> MappingStore:
    return manager.mapping_store


async def get_mapping_cache(manager: ServiceManager = Depends(get_service_manager)) -> MappingCache:
    return manager.mapping_cache
