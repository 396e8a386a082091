"""APScheduler configuration and initialization."""

import structlog
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from lumentree.config import get_settings
from lumentree.scheduler.jobs import (
    job_poll_battery_cells,
    job_poll_realtime,
    job_poll_soc,
)

logger = structlog.get_logger(__name__)

# Global scheduler instance
_scheduler: AsyncIOScheduler | None = None


def init_scheduler() -> AsyncIOScheduler:
    """Configure and initialize the push scheduler.

    Jobs live in memory: subscriptions do not survive a restart, so neither
    should the jobs feeding them.

    Returns:
        Configured AsyncIOScheduler instance

    Raises:
        RuntimeError: If the scheduler is already initialized
    """
    global _scheduler

    if _scheduler is not None:
        raise RuntimeError("Scheduler already initialized")

    settings = get_settings()
    _scheduler = AsyncIOScheduler(
        jobstores={"default": MemoryJobStore()},
        timezone=settings.timezone,
        job_defaults={"coalesce": True, "max_instances": 1, "misfire_grace_time": 30},
    )

    _register_jobs(_scheduler)

    logger.info(
        "scheduler_initialized",
        timezone=settings.timezone,
        realtime_interval=settings.realtime.interval,
        cell_interval=settings.realtime.cell_interval,
        soc_interval=settings.realtime.soc_interval,
    )
    return _scheduler


def _register_jobs(scheduler: AsyncIOScheduler) -> None:
    """Register the polling jobs.

    Args:
        scheduler: Scheduler instance
    """
    realtime = get_settings().realtime

    scheduler.add_job(
        job_poll_realtime,
        trigger=IntervalTrigger(seconds=realtime.interval),
        id="poll_realtime",
        name=f"Push real-time data (every {realtime.interval}s)",
        replace_existing=True,
        max_instances=1,
    )

    scheduler.add_job(
        job_poll_battery_cells,
        trigger=IntervalTrigger(seconds=realtime.cell_interval),
        id="poll_battery_cells",
        name=f"Push battery cell data (every {realtime.cell_interval}s)",
        replace_existing=True,
        max_instances=1,
    )

    scheduler.add_job(
        job_poll_soc,
        trigger=IntervalTrigger(seconds=realtime.soc_interval),
        id="poll_soc",
        name=f"Push SOC timeline (every {realtime.soc_interval}s)",
        replace_existing=True,
        max_instances=1,
    )

    logger.info("scheduler_jobs_registered", job_count=3)


def get_scheduler() -> AsyncIOScheduler | None:
    """Get the scheduler instance.

    Returns:
        Scheduler instance, or None if not initialized
    """
    return _scheduler


def start_scheduler() -> None:
    """Start the scheduler.

    Raises:
        RuntimeError: If the scheduler is not initialized
    """
    if _scheduler is None:
        raise RuntimeError("Scheduler not initialized. Call init_scheduler() first.")

    if _scheduler.running:
        logger.warning("scheduler_already_running")
        return

    _scheduler.start()
    logger.info("scheduler_started", job_count=len(_scheduler.get_jobs()))


async def shutdown_scheduler() -> None:
    """Stop the scheduler and forget it."""
    global _scheduler

    logger.info("scheduler_shutting_down")

    try:
        if _scheduler is not None and _scheduler.running:
            _scheduler.shutdown(wait=False)
        logger.info("scheduler_shutdown_complete")
    except Exception as e:
        logger.error("scheduler_shutdown_error", error=str(e))
    finally:
        _scheduler = None
