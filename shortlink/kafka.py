"""Kafka producer for redirect stats events."""

import json
import logging

from aiokafka import AIOKafkaProducer
from aiokafka.errors import KafkaError
from prometheus_client import Counter

from shortlink.config import Settings
from shortlink.errors import EventBusUnavailableError
from shortlink.schemas import RawStatsEvent

__all__ = ["EventProducer"]

logger = logging.getLogger(__name__)

STATS_EVENTS_PUBLISHED_TOTAL = Counter(
    "shortlink_stats_events_published_total",
    "Redirect events handed to Kafka",
)
STATS_EVENTS_PUBLISH_FAILED_TOTAL = Counter(
    "shortlink_stats_events_publish_failed_total",
    "Redirect events that could not be handed to Kafka",
)


class EventProducer:
    """Publishes ``RawStatsEvent`` records keyed by token.

    ``send_event`` waits for the broker acknowledgement, so delivery failures
    reach the caller instead of an unobserved future.
    """

    def __init__(self, producer: AIOKafkaProducer, topic: str) -> None:
        self._producer = producer
        self._topic = topic
        self._started = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "EventProducer":
        producer = AIOKafkaProducer(
            bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS,
            value_serializer=lambda payload: json.dumps(payload).encode("utf-8"),
            linger_ms=settings.KAFKA_PRODUCER_LINGER_MS,
        )
        return cls(producer, settings.KAFKA_STATS_TOPIC)

    async def start(self) -> None:
        try:
            await self._producer.start()
        except KafkaError:
            # Redirects keep working without analytics; send_event reports each miss.
            logger.warning("Kafka producer failed to start, stats events will be dropped", exc_info=True)
            await self._producer.stop()
            return
        self._started = True

    async def stop(self) -> None:
        if self._started:
            await self._producer.stop()
            self._started = False

    async def send_event(self, event: RawStatsEvent) -> None:
        if not self._started:
            STATS_EVENTS_PUBLISH_FAILED_TOTAL.inc()
            raise EventBusUnavailableError("Kafka producer is not running")
        try:
            await self._producer.send_and_wait(
                self._topic,
                event.model_dump(mode="json"),
                key=event.url_token.encode("utf-8"),
            )
        except KafkaError as exc:
            STATS_EVENTS_PUBLISH_FAILED_TOTAL.inc()
            raise EventBusUnavailableError(f"publishing stats event for {event.url_token}") from exc
        STATS_EVENTS_PUBLISHED_TOTAL.inc()
