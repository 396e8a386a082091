"""Scheduled jobs pushing live device data to hub subscribers."""

from collections.abc import Awaitable, Callable

import structlog

from lumentree.api.dependencies import get_realtime_poller
from lumentree.core import RealtimePoller

logger = structlog.get_logger(__name__)


async def _run(job: str, poll: Callable[[RealtimePoller], Awaitable[dict[str, int]]]) -> None:
    poller = get_realtime_poller()
    # Nothing to push without subscribers
    if not poller.hub.subscribed_devices():
        return

    logger.debug("scheduled_job_started", job=job)
    try:
        delivered = await poll(poller)
        logger.debug(
            "scheduled_job_completed",
            job=job,
            device_count=len(delivered),
            delivered=sum(delivered.values()),
        )
    except Exception as e:
        logger.error("scheduled_job_failed", job=job, error=str(e), exc_info=True)


async def job_poll_realtime() -> None:
    """Push the current power flow of every subscribed device."""
    await _run("poll_realtime", lambda poller: poller.poll_realtime())


async def job_poll_battery_cells() -> None:
    """Push battery cell voltages of every subscribed device."""
    await _run("poll_battery_cells", lambda poller: poller.poll_battery_cells())


async def job_poll_soc() -> None:
    """Push today's SOC timeline of every subscribed device."""
    await _run("poll_soc", lambda poller: poller.poll_soc())
