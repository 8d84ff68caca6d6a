"""
Worker entry point.

Runs one ContentStreamConsumer until SIGINT/SIGTERM:

    contentflow-worker
"""

import asyncio
import signal
from typing import Optional

from contentflow import __version__
from contentflow.core.config import Settings, settings as default_settings
from contentflow.core.logging import get_logger, setup_logging
from contentflow.db.redis import close_redis, create_redis
from contentflow.services.context import PipelineContext
from contentflow.workers.consumer import ContentStreamConsumer

logger = get_logger(__name__)


async def run_worker(app_settings: Optional[Settings] = None) -> None:
    """Connect, start the consumer and wait for a stop signal."""
    cfg = app_settings or default_settings
    logger.info(
        "starting_worker",
        app_name=cfg.APP_NAME,
        environment=cfg.APP_ENV,
        version=__version__,
    )

    redis = await create_redis(cfg)
    consumer: Optional[ContentStreamConsumer] = None
    try:
        context = PipelineContext.from_redis(redis, cfg)
        consumer = ContentStreamConsumer(context)
        await consumer.start()

        stop_requested = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop_requested.set)

        await stop_requested.wait()
        logger.info("shutdown_requested")
    finally:
        if consumer is not None:
            await consumer.stop()
        await close_redis(redis)
        logger.info("worker_stopped")


def main() -> None:
    setup_logging()
    asyncio.run(run_worker())


if __name__ == "__main__":
    main()
