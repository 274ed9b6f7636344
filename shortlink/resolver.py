"""Mapping resolution use cases: shorten, resolve, update and delete.

Architecture Overview
=====================
::
    ┌──────────────────────────────────────────────────────────┐
    │                    MappingResolver                       │
    │  shorten · get_original_url · update_url_mapping · delete│
    └───────┬───────────────┬──────────────────┬───────────────┘
            ▼               ▼                  ▼
    ┌──────────────┐ ┌──────────────┐  ┌──────────────┐
    │ IdAllocator  │ │ MappingStore │  │ MappingCache │
    │ (Redis INCR) │ │ (PostgreSQL) │  │ (Redis)      │
    └──────────────┘ └──────────────┘  └──────────────┘

Lookup Flow
-----------
::
    ┌─────────────┐
    │ GET /:token │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Check cache │
    └──────┬──────┘
    HIT?   │
    ┌──────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌─────────┐
│ Query   │  │ Return  │
│ store   │  │ cached  │
└────┬────┘  └─────────┘
     ▼
┌─────────┐
│ Cache   │
│ (best   │
│ effort) │
└─────────┘

Key Behaviours
===============
- The store is always written before the cache is touched. A store failure
  aborts the operation before any cache mutation.
- Shorten never populates the cache; the first redirect does.
- Update invalidates the cached entry after the store commit, so the next
  read sees the new URL.
- Cache failures are logged and absorbed on every path.
- A miss that read the store just before a concurrent update or delete
  committed can refill the cache with the old URL after the invalidation.
  The cache TTL bounds how long that entry survives.
"""

import logging
import time
from typing import Protocol
from urllib.parse import urlsplit

import validators
from prometheus_client import Counter, Histogram

from shortlink.enums import CacheStatus, RequestStatus
from shortlink.errors import (
    CacheUnavailableError,
    InvalidInputError,
    InvalidUrlError,
    NotFoundError,
    TokenNotFoundError,
    UrlNotFoundError,
)
from shortlink.schemas import MappingInfo
from shortlink.token_codec import encode_token

__all__ = [
    "CacheAccessor",
    "IdSource",
    "MappingReader",
    "MappingResolver",
    "MappingWriter",
    "validate_url",
]

logger = logging.getLogger(__name__)

VALID_SCHEMES = frozenset({"http", "https"})


# ============================================================================
# PROMETHEUS METRICS
# ============================================================================

MAPPING_REQUESTS_TOTAL = Counter(
    "shortlink_mapping_requests_total",
    "Mapping operations handled by the resolver",
    ["operation", "status"],
)
MAPPING_LOOKUPS_TOTAL = Counter(
    "shortlink_mapping_lookups_total",
    "Token lookups by cache outcome",
    ["cache_hit"],
)
MAPPING_OPERATION_DURATION = Histogram(
    "shortlink_mapping_operation_duration_seconds",
    "Time taken by resolver operations",
    ["operation"],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
)


# ============================================================================
# CAPABILITY CONTRACTS
# ============================================================================


class MappingReader(Protocol):
    async def get_mapping_by_token(self, url_token: str) -> MappingInfo | None: ...


class MappingWriter(Protocol):
    async def add_new_mapping(self, mapping_id: int, original_url: str, url_token: str) -> MappingInfo: ...

    async def update_original_url(self, url_token: str, new_url: str) -> MappingInfo: ...

    async def delete_mapping_info(self, url_token: str) -> None: ...


class CacheAccessor(Protocol):
    async def get_original_url(self, url_token: str) -> str | None: ...

    async def set_mapping(self, original_url: str, url_token: str) -> None: ...

    async def delete_mapping(self, url_token: str) -> None: ...


class IdSource(Protocol):
    async def get_next_id(self) -> int: ...


class MappingStoreContract(MappingReader, MappingWriter, Protocol):
    pass


# ============================================================================
# VALIDATION
# ============================================================================


def validate_url(url: str) -> None:
    """Accept absolute http(s) URLs with a host.

    Raises:
        InvalidUrlError: With "Invalid url provided" for unparseable or host-less
            URLs, "Unsupported URL scheme" for anything other than http/https.
    """
    try:
        parts = urlsplit(url)
    except ValueError as exc:
        raise InvalidUrlError(f"Invalid url provided: {url}") from exc
    if not parts.scheme or not parts.netloc:
        raise InvalidUrlError(f"Invalid url provided: {url}")
    if parts.scheme not in VALID_SCHEMES:
        raise InvalidUrlError(f"Unsupported URL scheme: {parts.scheme}")
    if not validators.url(url, simple_host=True):
        raise InvalidUrlError(f"Invalid url provided: {url}")


# ============================================================================
# RESOLVER
# ============================================================================


class MappingResolver:
    """Orchestrates the id allocator, the durable store and the cache.

    Example:
        >>> resolver = MappingResolver(store, cache, allocator)
        >>> mapping = await resolver.shorten("https://a.example/x")
        >>> await resolver.get_original_url(mapping.url_token)
        'https://a.example/x'
    """

    def __init__(self, store: MappingStoreContract, cache: CacheAccessor, id_source: IdSource) -> None:
        self._store = store
        self._cache = cache
        self._id_source = id_source

    async def shorten(self, original_url: str) -> MappingInfo:
        """Create a mapping for a URL.

        Validation runs first, so a rejected URL never consumes an id.

        Raises:
            InvalidUrlError: If the URL is not an absolute http(s) URL.
            DuplicateMappingError: If the allocated id is already stored.
            UnavailableError: If the counter or the store cannot be reached.
        """
        start_time = time.perf_counter()
        status = RequestStatus.ERROR
        try:
            validate_url(original_url)
            mapping_id = await self._id_source.get_next_id()
            mapping = await self._store.add_new_mapping(mapping_id, original_url, encode_token(mapping_id))
            status = RequestStatus.SUCCESS
            logger.info("Created mapping %s -> %s", mapping.url_token, original_url)
            return mapping
        except InvalidInputError:
            status = RequestStatus.VALIDATION_ERROR
            raise
        finally:
            self._record("shorten", status, start_time)

    async def get_original_url(self, url_token: str) -> str:
        """Resolve a token, cache first.

        Raises:
            UrlNotFoundError: If the store has no mapping for the token.
            StoreUnavailableError: If the store cannot be read on a cache miss.
        """
        start_time = time.perf_counter()
        status = RequestStatus.ERROR
        try:
            cached_url = await self._cache.get_original_url(url_token)
            if cached_url is not None:
                MAPPING_LOOKUPS_TOTAL.labels(cache_hit=CacheStatus.HIT).inc()
                status = RequestStatus.SUCCESS
                return cached_url

            MAPPING_LOOKUPS_TOTAL.labels(cache_hit=CacheStatus.MISS).inc()
            mapping = await self._store.get_mapping_by_token(url_token)
            if mapping is None:
                status = RequestStatus.NOT_FOUND
                raise UrlNotFoundError(f"No url found for token {url_token}")

            try:
                await self._cache.set_mapping(mapping.original_url, url_token)
            except CacheUnavailableError:
                logger.warning("Failed to cache token %s", url_token, exc_info=True)

            status = RequestStatus.SUCCESS
            return mapping.original_url
        finally:
            self._record("get", status, start_time)

    async def update_url_mapping(self, url_token: str, new_url: str) -> MappingInfo:
        """Point an existing token at a new URL and invalidate its cached entry.

        Raises:
            InvalidUrlError: If the new URL is invalid.
            TokenNotFoundError: If no mapping has the token.
            StoreUnavailableError: If the store cannot be reached.
        """
        start_time = time.perf_counter()
        status = RequestStatus.ERROR
        try:
            validate_url(new_url)
            mapping = await self._store.update_original_url(url_token, new_url)
            await self._invalidate(url_token, missing_level=logging.DEBUG)
            status = RequestStatus.SUCCESS
            logger.info("Updated mapping %s -> %s", url_token, new_url)
            return mapping
        except InvalidInputError:
            status = RequestStatus.VALIDATION_ERROR
            raise
        except NotFoundError:
            status = RequestStatus.NOT_FOUND
            raise
        finally:
            self._record("update", status, start_time)

    async def delete_url(self, url_token: str) -> None:
        """Remove a mapping from the store, then from the cache.

        Raises:
            TokenNotFoundError: If the store has no mapping for the token.
            StoreUnavailableError: If the store cannot be reached.
        """
        start_time = time.perf_counter()
        status = RequestStatus.ERROR
        try:
            await self._store.delete_mapping_info(url_token)
            await self._invalidate(url_token)
            status = RequestStatus.SUCCESS
            logger.info("Deleted mapping %s", url_token)
        except NotFoundError:
            status = RequestStatus.NOT_FOUND
            raise
        finally:
            self._record("delete", status, start_time)

    async def _invalidate(self, url_token: str, missing_level: int = logging.WARNING) -> None:
        try:
            await self._cache.delete_mapping(url_token)
        except TokenNotFoundError:
            logger.log(missing_level, "Token %s was not cached", url_token)
        except CacheUnavailableError:
            logger.warning("Failed to invalidate cached token %s", url_token, exc_info=True)

    @staticmethod
    def _record(operation: str, status: RequestStatus, start_time: float) -> None:
        MAPPING_REQUESTS_TOTAL.labels(operation=operation, status=status).inc()
        MAPPING_OPERATION_DURATION.labels(operation=operation).observe(time.perf_counter() - start_time)
