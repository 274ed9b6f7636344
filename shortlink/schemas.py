"""Pydantic schemas for requests, responses and bus records.

Schema Hierarchy
=================
::
    UrlRequest (Input, POST /shorten and PUT /{token})
    └─ url: str (validated by the resolver, not here)

    MappingInfo (Output)
    ├─ id: int
    ├─ original_url: str
    ├─ url_token: str
    ├─ created_at: datetime
    └─ updated_at: datetime

    RawStatsEvent (Kafka value, one per redirect)
    ├─ event_id: str (dedup key)
    ├─ url_token, timestamp, ip, user_agent, referrer

    EnrichedStatsEvent (stats store row)
    ├─ event_id, url_token, timestamp
    ├─ country, city, device_type, referrer

    AggregateStats (Output, GET /shorten/{token}/stats)
    ├─ url_token, total_clicks
    └─ count_by_country / count_by_city / count_by_device_type / count_by_referrer

    HealthResponse (Output)
    ├─ status, database, cache

Key Behaviours
===============
- URL syntax is checked by ``shortlink.resolver.validate_url`` so an invalid URL
  is a 400 from the resolver instead of a schema error.
- All datetime fields are timezone-aware.
- ``MappingInfo`` is built from ORM rows via ``from_attributes``.
"""

import datetime
import uuid

from pydantic import BaseModel, Field

from shortlink.enums import DeviceType, HealthStatus

__all__ = [
    "UrlRequest",
    "MappingInfo",
    "RawStatsEvent",
    "EnrichedStatsEvent",
    "AggregateStats",
    "HealthResponse",
]


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class UrlRequest(BaseModel):
    url: str


class MappingInfo(BaseModel):
    id: int
    original_url: str
    url_token: str
    created_at: datetime.datetime
    updated_at: datetime.datetime

    model_config = {"from_attributes": True}


class RawStatsEvent(BaseModel):
    """Redirect event published to Kafka, keyed by url_token for partition affinity."""

    event_id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        description="Unique id of the redirect; repeated deliveries share it.",
    )
    url_token: str = Field(..., description="Token that was resolved, e.g. 'b'")
    timestamp: datetime.datetime = Field(default_factory=_utcnow)
    ip: str = Field("", description="Client IP as seen by the redirect handler.")
    user_agent: str = ""
    referrer: str = ""


class EnrichedStatsEvent(BaseModel):
    """Fact row written to the stats store."""

    event_id: str
    url_token: str
    timestamp: datetime.datetime
    country: str
    city: str
    device_type: DeviceType
    referrer: str = ""


class AggregateStats(BaseModel):
    url_token: str
    total_clicks: int
    count_by_country: dict[str, int] = Field(default_factory=dict)
    count_by_city: dict[str, int] = Field(default_factory=dict)
    count_by_device_type: dict[str, int] = Field(default_factory=dict)
    count_by_referrer: dict[str, int] = Field(default_factory=dict)


class HealthResponse(BaseModel):
    status: HealthStatus
    database: HealthStatus
    cache: HealthStatus
