"""Tests for scheduler system."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from lumentree.scheduler.jobs import job_poll_realtime, job_poll_soc
from lumentree.scheduler.scheduler import get_scheduler, init_scheduler, shutdown_scheduler


@pytest.fixture
def mock_poller() -> MagicMock:
    """Create a mock RealtimePoller with one subscribed device."""
    poller = MagicMock()
    poller.hub.subscribed_devices.return_value = ["P1"]
    poller.poll_realtime = AsyncMock(return_value={"P1": 2})
    poller.poll_battery_cells = AsyncMock(return_value={"P1": 2})
    poller.poll_soc = AsyncMock(return_value={"P1": 2})
    return poller


@pytest.mark.asyncio
async def test_init_scheduler() -> None:
    """Test scheduler initialization registers the three jobs."""
    try:
        scheduler = init_scheduler()
        assert isinstance(scheduler, AsyncIOScheduler)
        assert get_scheduler() is scheduler
        job_ids = {job.id for job in scheduler.get_jobs()}
        assert job_ids == {"poll_realtime", "poll_battery_cells", "poll_soc"}
        with pytest.raises(RuntimeError):
            init_scheduler()
    finally:
        await shutdown_scheduler()

    assert get_scheduler() is None


@pytest.mark.asyncio
async def test_job_poll_realtime(mock_poller: MagicMock) -> None:
    """Test job_poll_realtime execution."""
    with patch("lumentree.scheduler.jobs.get_realtime_poller", return_value=mock_poller):
        await job_poll_realtime()

    mock_poller.poll_realtime.assert_awaited_once()


@pytest.mark.asyncio
async def test_job_skips_without_subscribers(mock_poller: MagicMock) -> None:
    """Test that jobs do nothing when nobody is subscribed."""
    mock_poller.hub.subscribed_devices.return_value = []

    with patch("lumentree.scheduler.jobs.get_realtime_poller", return_value=mock_poller):
        await job_poll_soc()

    mock_poller.poll_soc.assert_not_awaited()


@pytest.mark.asyncio
async def test_job_error_handling(mock_poller: MagicMock) -> None:
    """Test that a job logs its own errors instead of raising."""
    mock_poller.poll_soc.side_effect = RuntimeError("boom")

    with patch("lumentree.scheduler.jobs.get_realtime_poller", return_value=mock_poller):
        await job_poll_soc()

    mock_poller.poll_soc.assert_awaited_once()
