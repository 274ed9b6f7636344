"""Enrichment of raw redirect events with geography and device class."""

import logging
from typing import Protocol

import user_agents

from shortlink.enums import DeviceType
from shortlink.errors import LocationLookupError
from shortlink.geo import Location
from shortlink.schemas import EnrichedStatsEvent, RawStatsEvent

__all__ = ["EventEnricher", "Locator", "UNKNOWN_LOCATION", "classify_device"]

logger = logging.getLogger(__name__)

UNKNOWN_LOCATION = "Unknown"


class Locator(Protocol):
    def locate(self, ip: str) -> Location: ...


def classify_device(user_agent: str) -> DeviceType:
    """Map a user-agent string onto one device class.

    Classes are checked in priority order: mobile, tablet, desktop, bot.
    Anything else, including an empty string, is ``DeviceType.UNKNOWN``.
    """
    if not user_agent:
        return DeviceType.UNKNOWN

    parsed = user_agents.parse(user_agent)
    if parsed.is_mobile:
        return DeviceType.MOBILE
    if parsed.is_tablet:
        return DeviceType.TABLET
    if parsed.is_pc:
        return DeviceType.DESKTOP
    if parsed.is_bot:
        return DeviceType.BOT
    return DeviceType.UNKNOWN


class EventEnricher:
    def __init__(self, locator: Locator) -> None:
        self._locator = locator

    def enrich(self, raw: RawStatsEvent) -> EnrichedStatsEvent:
        """Build the stats row for a redirect.

        A failed IP lookup never fails the event; both geo fields fall back to
        ``"Unknown"`` and a warning is logged.
        """
        try:
            location = self._locator.locate(raw.ip)
        except LocationLookupError as exc:
            logger.warning("Failed to locate ip %r for token %s: %s", raw.ip, raw.url_token, exc.__cause__ or exc)
            location = Location(country=None, city=None)

        return EnrichedStatsEvent(
            event_id=raw.event_id,
            url_token=raw.url_token,
            timestamp=raw.timestamp,
            country=location.country or UNKNOWN_LOCATION,
            city=location.city or UNKNOWN_LOCATION,
            device_type=classify_device(raw.user_agent),
            referrer=raw.referrer,
        )
