"""APScheduler setup for periodic tasks."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from busradar.core.catalog_store import StopCatalogStore
from busradar.core.refresh_clock import SharedRefreshClock

logger = logging.getLogger(__name__)


def create_scheduler(clock: SharedRefreshClock, catalog_store: StopCatalogStore) -> AsyncIOScheduler:
    """Create and configure the scheduler with all jobs."""
    from busradar.config import settings

    scheduler = AsyncIOScheduler()

    # Shared refresh countdown, one step per second
    scheduler.add_job(
        clock.tick,
        "interval",
        seconds=1,
        id="refresh_clock_tick",
        name="Advance the shared arrivals refresh countdown",
        max_instances=1,
        coalesce=True,
    )

    # Force a network refresh of the stop catalog every N hours
    scheduler.add_job(
        catalog_store.refresh,
        "interval",
        hours=settings.catalog_refresh_hours,
        id="refresh_catalog",
        name="Refresh bus stop catalog from LTA",
        max_instances=1,
    )

    return scheduler
