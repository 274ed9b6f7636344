"""Shared enums for the shortlink service.

This module defines all status and label enums used across the codebase.
Using enums instead of string literals provides type safety and prevents typos.
"""

from enum import StrEnum

__all__ = ["HealthStatus", "RequestStatus", "CacheStatus", "DeviceType", "StatsBackend"]


class HealthStatus(StrEnum):
    """Health check status values."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class RequestStatus(StrEnum):
    """Request status values for metrics and logging."""

    SUCCESS = "success"
    VALIDATION_ERROR = "validation_error"
    ERROR = "error"
    NOT_FOUND = "not_found"


class CacheStatus(StrEnum):
    """Cache status values for metrics."""

    HIT = "true"
    MISS = "false"


class DeviceType(StrEnum):
    """Device classes assigned to redirect events.

    UNKNOWN is the fixed fallback for agents that match none of the other classes.
    """

    MOBILE = "Mobile"
    TABLET = "Tablet"
    DESKTOP = "Desktop"
    BOT = "Bot"
    UNKNOWN = "Unknown"


class StatsBackend(StrEnum):
    """Storage engines for enriched redirect events."""

    CLICKHOUSE = "clickhouse"
    SQL = "sql"
