"""FastAPI route definitions for the shortlink REST API.

API Endpoint Overview
=====================
::
    GET    /health
        └─ HealthResponse (200)

    POST   /shorten
        ├─ UrlRequest (request body)
        └─ MappingInfo (201) or 400

    GET    /shorten/:token/stats
        └─ AggregateStats (200) or 404

    GET    /:token
        └─ 307 Redirect or 404

    PUT    /:token
        ├─ UrlRequest (request body)
        └─ MappingInfo (200) or 400/404

    DELETE /:token
        └─ 204 or 404

Any ``UnavailableError`` from a component surfaces as 500.

Redirect Flow
=============
::
    ┌─────────────┐     ┌─────────────┐     ┌─────────────┐
    │ GET /:token │ ──► │ resolver    │ ──► │ 307 to the  │
    │             │     │ (cache→db)  │     │ original URL│
    └─────────────┘     └─────────────┘     └──────┬──────┘
                                                   ▼
                                            ┌─────────────┐
                                            │ background: │
                                            │ publish     │
                                            │ RawStats    │
                                            │ Event       │
                                            └─────────────┘

Key Behaviours
===============
- Publishing a redirect event never delays or fails the redirect; a publish
  failure is logged as a warning.
- The client IP honours X-Forwarded-For, then X-Real-IP.
- ``/health`` must stay registered before ``/{url_token}``.
"""

from typing import NoReturn

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Response
from fastapi.responses import RedirectResponse

from shortlink.cache import MappingCache
from shortlink.dependencies import (
    RequestContext,
    StatisticsCalculator,
    get_event_producer,
    get_mapping_cache,
    get_mapping_store,
    get_request_context,
    get_resolver,
    get_stats_aggregator,
)
from shortlink.enums import HealthStatus
from shortlink.errors import InvalidInputError, NotFoundError, ShortlinkError, UnavailableError
from shortlink.kafka import EventProducer
from shortlink.mapping_store import MappingStore
from shortlink.resolver import MappingResolver
from shortlink.schemas import AggregateStats, HealthResponse, MappingInfo, RawStatsEvent, UrlRequest

__all__ = ["router"]

router = APIRouter()


def _raise_http_error(ctx: RequestContext, operation: str, exc: ShortlinkError) -> NoReturn:
    if isinstance(exc, InvalidInputError):
        status_code = 400
    elif isinstance(exc, NotFoundError):
        status_code = 404
    else:
        status_code = 500

    log = ctx.logger.warning if status_code < 500 else ctx.logger.error
    log(
        f"{operation} failed: {exc}",
        extra={"operation": operation, "error": str(exc), "duration_ms": ctx.get_duration()},
        exc_info=status_code >= 500,
    )
    detail = str(exc) if status_code < 500 else "Internal server error"
    raise HTTPException(status_code=status_code, detail=detail) from exc


async def publish_redirect_event(producer: EventProducer, event: RawStatsEvent, ctx: RequestContext) -> None:
    try:
        await producer.send_event(event)
    except UnavailableError as exc:
        ctx.logger.warning(
            f"Failed to publish stats event for {event.url_token}: {exc}",
            extra={"operation": "redirect", "url_token": event.url_token},
        )


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(
    ctx: RequestContext = Depends(get_request_context),
    store: MappingStore = Depends(get_mapping_store),
    cache: MappingCache = Depends(get_mapping_cache),
) -> HealthResponse:
    db_status = HealthStatus.HEALTHY
    cache_status = HealthStatus.HEALTHY

    try:
        await store.ping()
    except Exception as e:
        ctx.logger.error(f"Database health check failed: {e}")
        db_status = HealthStatus.UNHEALTHY

    try:
        await cache.ping()
    except Exception as e:
        ctx.logger.error(f"Cache health check failed: {e}")
        cache_status = HealthStatus.UNHEALTHY

    status = (
        HealthStatus.HEALTHY
        if db_status is HealthStatus.HEALTHY and cache_status is HealthStatus.HEALTHY
        else HealthStatus.UNHEALTHY
    )
    return HealthResponse(status=status, database=db_status, cache=cache_status)


@router.post("/shorten", response_model=MappingInfo, status_code=201, tags=["urls"])
async def shorten_url(
    payload: UrlRequest,
    ctx: RequestContext = Depends(get_request_context),
    resolver: MappingResolver = Depends(get_resolver),
) -> MappingInfo:
    ctx.logger.info(
        f"URL shortening requested: {payload.url}",
        extra={"operation": "shorten", "target_url": payload.url},
    )
    try:
        mapping = await resolver.shorten(payload.url)
    except ShortlinkError as exc:
        _raise_http_error(ctx, "shorten", exc)

    ctx.logger.info(
        f"URL shortened successfully: {mapping.url_token}",
        extra={"operation": "shorten", "url_token": mapping.url_token, "duration_ms": ctx.get_duration()},
    )
    return mapping


@router.get("/shorten/{url_token}/stats", response_model=AggregateStats, tags=["stats"])
async def get_stats(
    url_token: str,
    ctx: RequestContext = Depends(get_request_context),
    aggregator: StatisticsCalculator = Depends(get_stats_aggregator),
) -> AggregateStats:
    ctx.logger.info(f"Stats requested for token: {url_token}")
    try:
        return await aggregator.calculate_statistics(url_token)
    except ShortlinkError as exc:
        _raise_http_error(ctx, "stats", exc)


@router.get("/{url_token}", tags=["redirect"])
async def redirect_to_url(
    url_token: str,
    background_tasks: BackgroundTasks,
    ctx: RequestContext = Depends(get_request_context),
    resolver: MappingResolver = Depends(get_resolver),
    producer: EventProducer = Depends(get_event_producer),
) -> RedirectResponse:
    try:
        original_url = await resolver.get_original_url(url_token)
    except ShortlinkError as exc:
        _raise_http_error(ctx, "redirect", exc)

    event = RawStatsEvent(
        url_token=url_token,
        ip=ctx.client_ip,
        user_agent=ctx.user_agent,
        referrer=ctx.referrer,
    )
    background_tasks.add_task(publish_redirect_event, producer, event, ctx)

    ctx.logger.info(
        f"Redirect successful: {url_token} -> {original_url}",
        extra={"operation": "redirect", "url_token": url_token, "duration_ms": ctx.get_duration()},
    )
    return RedirectResponse(url=original_url, status_code=307)


@router.put("/{url_token}", response_model=MappingInfo, tags=["urls"])
async def update_url(
    url_token: str,
    payload: UrlRequest,
    ctx: RequestContext = Depends(get_request_context),
    resolver: MappingResolver = Depends(get_resolver),
) -> MappingInfo:
    ctx.logger.info(
        f"URL update requested: {url_token} -> {payload.url}",
        extra={"operation": "update", "url_token": url_token, "target_url": payload.url},
    )
    try:
        return await resolver.update_url_mapping(url_token, payload.url)
    except ShortlinkError as exc:
        _raise_http_error(ctx, "update", exc)


@router.delete("/{url_token}", status_code=204, tags=["urls"])
async def delete_url(
    url_token: str,
    ctx: RequestContext = Depends(get_request_context),
    resolver: MappingResolver = Depends(get_resolver),
) -> Response:
    ctx.logger.info(f"URL deletion requested: {url_token}", extra={"operation": "delete", "url_token": url_token})
    try:
        await resolver.delete_url(url_token)
    except ShortlinkError as exc:
        _raise_http_error(ctx, "delete", exc)
    return Response(status_code=204)
