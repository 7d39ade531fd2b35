"""Service entrypoint: keep the yield caches warm until a stop signal."""

from __future__ import annotations

import asyncio
import signal

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from hive.config import load_settings
from hive.jobs.cache_warmer import reset_cache_warmer, start_cache_warmer
from hive.utils.logging import configure_logging, get_logger
from hive.yields.service import YieldService

logger = get_logger(__name__)


async def main() -> None:
    settings = load_settings()
    configure_logging(settings.log_level, log_file=settings.log_file)

    yields = YieldService(settings)
    scheduler = AsyncIOScheduler()

    warmer = start_cache_warmer(yields.stores, scheduler, settings)
    scheduler.start()

    try:
        logger.info(
            "service_started",
            warmer=warmer is not None,
            stores=[store.name for store in yields.stores],
        )

        stop_event = asyncio.Event()

        def signal_handler(signum, frame):
            logger.info("shutdown_signal_received", signal=signum)
            stop_event.set()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

        await stop_event.wait()

    finally:
        logger.info("service_stopping")
        scheduler.shutdown(wait=False)
        reset_cache_warmer()
        await yields.aclose()


if __name__ == "__main__":
    asyncio.run(main())
