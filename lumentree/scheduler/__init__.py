"""Scheduler for the real-time push jobs."""

from lumentree.scheduler.jobs import (
    job_poll_battery_cells,
    job_poll_realtime,
    job_poll_soc,
)
from lumentree.scheduler.scheduler import (
    get_scheduler,
    init_scheduler,
    shutdown_scheduler,
    start_scheduler,
)

__all__ = [
    "init_scheduler",
    "start_scheduler",
    "shutdown_scheduler",
    "get_scheduler",
    "job_poll_realtime",
    "job_poll_battery_cells",
    "job_poll_soc",
]
