"""Kafka consumer loop feeding the stats pipeline.

Loop Diagram
============
::
    ┌─────────────┐
    │ getmany()   │◄──────────────────────────┐
    └──────┬──────┘                           │
    ERROR? │── yes ─► log, sleep, retry ──────┤
           ▼                                  │
    ┌─────────────┐                           │
    │ process one │── error ─► log, drop ─────┤
    │ record      │                           │
    └──────┬──────┘                           │
           ▼                                  │
    ┌─────────────┐                           │
    │ commit      │── error ─► log ───────────┤
    │ offset + 1  │                           │
    └──────┬──────┘                           │
           └──────────────────────────────────┘

Key Behaviours
===============
- Offsets are committed only after a record has been processed and stored
  (at-least-once). A crash between store and commit redelivers the record.
- Records are processed one at a time, in fetch order.
- Fetch, process and commit errors are logged and never end the loop.
- A record that fails processing is dropped: it is not committed itself,
  but the next successful commit on its partition moves past it.
- ``stop()`` lets the in-flight record finish its process/commit step, then
  the loop exits and closes the consumer.
"""

import asyncio
import logging
from typing import Protocol

from aiokafka import AIOKafkaConsumer
from aiokafka.errors import KafkaError
from aiokafka.structs import TopicPartition
from prometheus_client import Counter

from shortlink.config import Settings
from shortlink.schemas import EnrichedStatsEvent

__all__ = ["EventProcessor", "StatsEventConsumer"]

logger = logging.getLogger(__name__)

STATS_EVENTS_CONSUMED_TOTAL = Counter(
    "shortlink_stats_events_consumed_total",
    "Stats events processed and committed",
)
STATS_EVENTS_FAILED_TOTAL = Counter(
    "shortlink_stats_events_failed_total",
    "Consumer loop failures by stage",
    ["stage"],
)


class EventProcessor(Protocol):
    async def process_event(self, payload: bytes) -> EnrichedStatsEvent: ...


class StatsEventConsumer:
    def __init__(
        self,
        consumer: AIOKafkaConsumer,
        processor: EventProcessor,
        poll_timeout_ms: int = 1000,
        max_records: int = 100,
        retry_delay_seconds: float = 1.0,
    ) -> None:
        self._consumer = consumer
        self._processor = processor
        self._poll_timeout_ms = poll_timeout_ms
        self._max_records = max_records
        self._retry_delay_seconds = retry_delay_seconds
        self._stopping = asyncio.Event()

    @classmethod
    def from_settings(cls, settings: Settings, processor: EventProcessor) -> "StatsEventConsumer":
        consumer = AIOKafkaConsumer(
            settings.KAFKA_STATS_TOPIC,
            bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS,
            group_id=settings.KAFKA_CONSUMER_GROUP,
            enable_auto_commit=False,
            auto_offset_reset="earliest",
            client_id=f"{settings.APP_NAME}-stats-consumer",
        )
        return cls(
            consumer,
            processor,
            poll_timeout_ms=settings.CONSUMER_POLL_TIMEOUT_MS,
            max_records=settings.CONSUMER_MAX_RECORDS,
            retry_delay_seconds=settings.CONSUMER_RETRY_DELAY_SECONDS,
        )

    def stop(self) -> None:
        self._stopping.set()

    async def start_consuming(self) -> None:
        """Run until :meth:`stop` is called, then close the consumer."""
        try:
            if await self._connect():
                logger.info("Stats consumer started")
                await self._consume()
        finally:
            await self._close()

    async def _connect(self) -> bool:
        while not self._stopping.is_set():
            try:
                await self._consumer.start()
                return True
            except KafkaError:
                STATS_EVENTS_FAILED_TOTAL.labels(stage="connect").inc()
                logger.error("Failed to start stats consumer, retrying", exc_info=True)
                await self._sleep_before_retry()
        return False

    async def _consume(self) -> None:
        while not self._stopping.is_set():
            try:
                batches = await self._consumer.getmany(
                    timeout_ms=self._poll_timeout_ms,
                    max_records=self._max_records,
                )
            except KafkaError:
                STATS_EVENTS_FAILED_TOTAL.labels(stage="fetch").inc()
                logger.error("Failed to fetch stats events", exc_info=True)
                await self._sleep_before_retry()
                continue

            for records in batches.values():
                for record in records:
                    # Records left in the batch are fetched again after a restart.
                    if self._stopping.is_set():
                        break
                    await self._handle(record)

    async def _handle(self, record) -> None:
        try:
            await self._processor.process_event(record.value)
        except Exception:
            STATS_EVENTS_FAILED_TOTAL.labels(stage="process").inc()
            logger.error(
                "Failed to process stats event at %s[%d]@%d",
                record.topic,
                record.partition,
                record.offset,
                exc_info=True,
            )
            return

        try:
            await self._consumer.commit({TopicPartition(record.topic, record.partition): record.offset + 1})
        except KafkaError:
            STATS_EVENTS_FAILED_TOTAL.labels(stage="commit").inc()
            logger.error("Failed to commit offset %d", record.offset, exc_info=True)
            return
        STATS_EVENTS_CONSUMED_TOTAL.inc()

    async def _sleep_before_retry(self) -> None:
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=self._retry_delay_seconds)
        except asyncio.TimeoutError:
            pass

    async def _close(self) -> None:
        try:
            await self._consumer.stop()
        except KafkaError:
            logger.error("Failed to close stats consumer", exc_info=True)
        logger.info("Stats consumer stopped")
