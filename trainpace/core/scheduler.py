"""APScheduler setup for periodic tasks."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

logger = logging.getLogger(__name__)


def create_scheduler(manager) -> AsyncIOScheduler:
    """Create and configure the scheduler with all jobs."""
    from trainpace.config import settings

    scheduler = AsyncIOScheduler()

    # Refresh arrivals for open journeys every N seconds
    scheduler.add_job(
        manager.refresh_all,
        "interval",
        seconds=settings.arrival_refresh_seconds,
        id="refresh_arrivals",
        name="Refresh TfL arrivals for open journeys",
        max_instances=1,
    )

    return scheduler
