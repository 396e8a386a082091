"""Polls the lumentree.net feeds for subscribed devices and pushes the results."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from lumentree.core.device_service import DeviceDataService
from lumentree.core.hub import RECEIVE_BATTERY_CELL_DATA, SubscriptionHub
from lumentree.core.lumentree_client import LumentreeClient

logger = structlog.get_logger(__name__)


class RealtimePoller:
    """Fetches live data for every subscribed device and broadcasts it."""

    def __init__(
        self,
        client: LumentreeClient,
        hub: SubscriptionHub,
        service: DeviceDataService,
    ) -> None:
        self.client = client
        self.hub = hub
        self.service = service

    async def _poll(
        self,
        feed: str,
        fetch: Callable[[str], Awaitable[Any]],
        broadcast: Callable[[str, Any], Awaitable[int]],
    ) -> dict[str, int]:
        """Fetch and broadcast one feed for all subscribed devices.

        Returns:
            Mapping of device ID to number of clients reached (failed devices
            are left out)
        """
        devices = self.hub.subscribed_devices()
        if not devices:
            return {}

        results = await asyncio.gather(
            *(fetch(device_id) for device_id in devices), return_exceptions=True
        )

        delivered: dict[str, int] = {}
        for device_id, result in zip(devices, results, strict=True):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                logger.warning(
                    "realtime_poll_failed",
                    feed=feed,
                    device_id=device_id,
                    error=str(result),
                    error_type=type(result).__name__,
                )
                continue
            delivered[device_id] = await broadcast(device_id, result)

        logger.debug("realtime_poll_completed", feed=feed, devices=len(devices))
        return delivered

    async def poll_realtime(self) -> dict[str, int]:
        """Push the current power flow of every subscribed device."""
        return await self._poll(
            "realtime", self.client.get_realtime_data, self.hub.broadcast_realtime
        )

    async def poll_battery_cells(self) -> dict[str, int]:
        """Push battery cell voltages of every subscribed device."""
        return await self._poll(
            "cells", self.client.get_battery_cells, self.hub.broadcast_cell_data
        )

    async def poll_soc(self) -> dict[str, int]:
        """Push today's SOC timeline of every subscribed device."""
        today = self.service.today()

        async def fetch(device_id: str) -> Any:
            return await self.client.get_soc_timeline(device_id, today)

        return await self._poll("soc", fetch, self.hub.broadcast_soc)

    async def push_battery_cells(self, client_id: str, device_id: str) -> bool:
        """Answer a client's request for battery cell data.

        Returns:
            True if the data reached the client
        """
        data = await self.client.get_battery_cells(device_id)
        return await self.hub.send_to(client_id, RECEIVE_BATTERY_CELL_DATA, data)
