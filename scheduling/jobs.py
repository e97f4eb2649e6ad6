"""
Background Jobs

Periodic waitlist sweep run by APScheduler inside the application's event loop.
"""

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from scheduling.models.results import UpstreamUnavailable
from scheduling.services.facade import SchedulingFacade, SweepReport

logger = logging.getLogger(__name__)

WAITLIST_SWEEP_JOB_ID = "waitlist_sweep"


async def run_waitlist_sweep(facade: SchedulingFacade) -> Optional[SweepReport]:
    """
    Run one waitlist sweep.

    Upstream failures are logged and the sweep is retried on the next tick.

    Returns:
        SweepReport, or None if the catalog or database was unavailable
    """
    try:
        return await facade.sweep_waitlist()
    except UpstreamUnavailable as e:
        logger.error(f"Waitlist sweep skipped, upstream unavailable: {e}")
        return None


def create_scheduler(facade: SchedulingFacade, interval_seconds: int) -> AsyncIOScheduler:
    """
    Build a scheduler with the waitlist sweep job registered.

    The caller starts it from a running event loop and shuts it down on exit.

    Args:
        facade: Facade whose waitlist is swept
        interval_seconds: Seconds between sweeps

    Returns:
        AsyncIOScheduler (not started)
    """
    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        run_waitlist_sweep,
        "interval",
        seconds=interval_seconds,
        id=WAITLIST_SWEEP_JOB_ID,
        args=[facade],
        max_instances=1,
        coalesce=True,
    )
    logger.info(f"Waitlist sweep scheduled every {interval_seconds}s")
    return scheduler
