"""Standalone stats consumer process.

Runs only the Kafka -> enrich -> stats store pipeline, for deployments that
keep the API process free of the consumer (``CONSUMER_ENABLED=false``)::

    python -m shortlink.worker
"""

import asyncio
import logging
import signal

from prometheus_client import start_http_server

from shortlink.config import get_settings
from shortlink.database import close_db, init_db
from shortlink.dependencies import ServiceManager
from shortlink.enums import StatsBackend

__all__ = ["run"]

logger = logging.getLogger(__name__)


async def run() -> None:
    settings = get_settings()
    start_http_server(settings.WORKER_METRICS_PORT)

    if settings.STATS_BACKEND is StatsBackend.SQL:
        await init_db()

    manager = ServiceManager()
    consumer_task = await manager.initialize_pipeline()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, manager.stats_consumer.stop)

    logger.info("Stats worker running, metrics on port %d", settings.WORKER_METRICS_PORT)
    try:
        await consumer_task
    finally:
        await manager.cleanup()
        await close_db()


if __name__ == "__main__":
    asyncio.run(run())
