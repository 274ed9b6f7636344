"""Turns one raw bus message into a stored, enriched stats row."""

import json
import logging
from typing import Protocol

from pydantic import ValidationError

from shortlink.enricher import EventEnricher
from shortlink.errors import InvalidInputError
from shortlink.schemas import EnrichedStatsEvent, RawStatsEvent

__all__ = ["StatsEventAdder", "StatsProcessor"]

logger = logging.getLogger(__name__)


class StatsEventAdder(Protocol):
    async def add_stats_event(self, event: EnrichedStatsEvent) -> None: ...


class StatsProcessor:
    def __init__(self, enricher: EventEnricher, storage: StatsEventAdder) -> None:
        self._enricher = enricher
        self._storage = storage

    async def process_event(self, payload: bytes) -> EnrichedStatsEvent:
        """Parse, enrich and store a ``RawStatsEvent`` JSON payload.

        Raises:
            InvalidInputError: If the payload is not a valid raw event.
            StatsStoreUnavailableError: If the stats store rejects the write.
        """
        try:
            raw = RawStatsEvent.model_validate_json(payload)
        except (ValidationError, json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise InvalidInputError(f"Malformed stats event payload: {payload[:200]!r}") from exc

        event = self._enricher.enrich(raw)
        await self._storage.add_stats_event(event)
        logger.debug("Stored stats event %s for token %s", event.event_id, event.url_token)
        return event
