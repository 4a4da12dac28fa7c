"""Job scheduler using APScheduler."""

import asyncio
import logging
from typing import NoReturn

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from stockdraft.config import Settings
from stockdraft.exceptions import StockDraftError
from stockdraft.live import LivePriceService, build_service
from stockdraft.market import EASTERN

logger = logging.getLogger(__name__)


async def refresh_job(service: LivePriceService) -> None:
    try:
        result = await service.refresh()
        logger.info(f"Refresh: {result.message}")
    except StockDraftError as e:
        logger.error(f"Refresh failed: {e}")


async def close_job(service: LivePriceService) -> None:
    try:
        result = await service.close_prices()
        logger.info(f"Daily close recorded for {result.date} ({result.fetched} fetched)")
    except StockDraftError as e:
        logger.error(f"Daily close failed: {e}")


def _close_trigger(settings: Settings) -> CronTrigger:
    return CronTrigger(
        day_of_week="mon-fri",
        hour=settings.scheduler.close_hour,
        minute=settings.scheduler.close_minute,
        timezone=EASTERN,
    )


def create_embedded_scheduler(service: LivePriceService) -> AsyncIOScheduler:
    """Refresh job that runs on the API server's event loop."""
    minutes = service.settings.scheduler.refresh_minutes
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        refresh_job,
        IntervalTrigger(minutes=minutes),
        args=[service],
        id="price-refresh",
        name="Prices: Live Refresh",
        max_instances=1,
        coalesce=True,
    )
    logger.info(f"Registered job: Live Price Refresh (every {minutes} min)")
    return scheduler


def start_scheduler(settings: Settings) -> NoReturn:
    """Start the blocking scheduler with the refresh and daily close jobs."""
    service = build_service(settings)
    loop = asyncio.new_event_loop()

    def run_refresh() -> None:
        loop.run_until_complete(refresh_job(service))

    def run_close() -> None:
        loop.run_until_complete(close_job(service))

    # One worker thread: both jobs share the same event loop
    scheduler = BlockingScheduler(executors={"default": ThreadPoolExecutor(1)})

    scheduler.add_job(
        run_refresh,
        IntervalTrigger(minutes=settings.scheduler.refresh_minutes),
        id="price-refresh",
        name="Prices: Live Refresh",
        max_instances=1,
        coalesce=True,
    )
    logger.info(
        f"Registered job: Live Price Refresh (every {settings.scheduler.refresh_minutes} min)"
    )

    scheduler.add_job(
        run_close,
        _close_trigger(settings),
        id="daily-close",
        name="Prices: Daily Close",
    )
    logger.info(
        f"Registered job: Daily Close (weekdays {settings.scheduler.close_hour:02d}:"
        f"{settings.scheduler.close_minute:02d} ET)"
    )

    try:
        logger.info("✓ Scheduler starting...")
        logger.info(f"✓ {len(scheduler.get_jobs())} jobs registered")
        logger.info("Press Ctrl+C to stop\n")

        scheduler.start()

    except (KeyboardInterrupt, SystemExit):
        logger.info("\nReceived interrupt signal")
        scheduler.shutdown()
        loop.run_until_complete(service.cache.close())
        loop.close()
        logger.info("✓ Scheduler stopped cleanly")
