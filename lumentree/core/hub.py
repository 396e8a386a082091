"""Subscription hub: which client watches which device, and message fan-out."""

import asyncio
from collections import defaultdict
from typing import Any, Protocol

import structlog

logger = structlog.get_logger(__name__)

RECEIVE_REALTIME_DATA = "ReceiveRealTimeData"
RECEIVE_BATTERY_CELL_DATA = "ReceiveBatteryCellData"
RECEIVE_SOC_DATA = "ReceiveSOCData"
SUBSCRIPTION_CONFIRMED = "SubscriptionConfirmed"
ERROR = "Error"


class HubClient(Protocol):
    """A connected push client."""

    client_id: str

    async def send(self, message: dict[str, Any]) -> None:
        """Deliver one frame to the client."""
        ...


def frame(message_type: str, data: Any) -> dict[str, Any]:
    """Build a hub frame."""
    return {"type": message_type, "data": data}


class SubscriptionHub:
    """Tracks client subscriptions and pushes device messages to them.

    A client is subscribed to at most one device at a time. All state changes
    happen synchronously on the event loop, so no lock is needed; broadcasts
    work on a snapshot of the subscriber set.
    """

    def __init__(self, send_timeout: float = 5.0) -> None:
        """Initialize hub.

        Args:
            send_timeout: Upper bound for one delivery in seconds
        """
        self.send_timeout = send_timeout
        self._clients: dict[str, HubClient] = {}
        self._device_by_client: dict[str, str] = {}
        self._clients_by_device: dict[str, set[str]] = defaultdict(set)

    @property
    def client_count(self) -> int:
        """Number of connected clients."""
        return len(self._clients)

    def connect(self, client: HubClient) -> None:
        """Register a connected client."""
        self._clients[client.client_id] = client
        logger.info("hub_client_connected", client_id=client.client_id)

    def disconnect(self, client_id: str) -> None:
        """Forget a client and every subscription it holds."""
        device_id = self._device_by_client.get(client_id)
        if device_id is not None:
            self._remove(client_id, device_id)
        self._clients.pop(client_id, None)
        logger.info("hub_client_disconnected", client_id=client_id, device_id=device_id)

    def _remove(self, client_id: str, device_id: str) -> None:
        self._device_by_client.pop(client_id, None)
        subscribers = self._clients_by_device.get(device_id)
        if subscribers is None:
            return
        subscribers.discard(client_id)
        if not subscribers:
            del self._clients_by_device[device_id]

    def subscribe(self, client_id: str, device_id: str) -> bool:
        """Subscribe a client to a device, dropping its previous device.

        Returns:
            True if the subscription changed
        """
        current = self._device_by_client.get(client_id)
        if current == device_id:
            return False
        if current is not None:
            self._remove(client_id, current)
            logger.info(
                "hub_client_unsubscribed",
                client_id=client_id,
                device_id=current,
                reason="switch",
            )

        self._device_by_client[client_id] = device_id
        self._clients_by_device[device_id].add(client_id)
        logger.info(
            "hub_client_subscribed",
            client_id=client_id,
            device_id=device_id,
            subscribers=self.subscriber_count(device_id),
        )
        return True

    def unsubscribe(self, client_id: str, device_id: str) -> bool:
        """Remove a subscription if present.

        Returns:
            True if a subscription was removed
        """
        if self._device_by_client.get(client_id) != device_id:
            return False
        self._remove(client_id, device_id)
        logger.info("hub_client_unsubscribed", client_id=client_id, device_id=device_id)
        return True

    def subscriber_count(self, device_id: str) -> int:
        """Number of clients subscribed to a device."""
        return len(self._clients_by_device.get(device_id, ()))

    def subscribed_devices(self) -> list[str]:
        """Devices with at least one subscriber."""
        return [device for device, clients in self._clients_by_device.items() if clients]

    def device_for(self, client_id: str) -> str | None:
        """Device a client is subscribed to."""
        return self._device_by_client.get(client_id)

    async def send_to(self, client_id: str, message_type: str, data: Any) -> bool:
        """Deliver one frame to a single client.

        Returns:
            True if delivered
        """
        client = self._clients.get(client_id)
        if client is None:
            return False
        return await self._deliver(client, frame(message_type, data))

    async def _deliver(self, client: HubClient, message: dict[str, Any]) -> bool:
        try:
            await asyncio.wait_for(client.send(message), timeout=self.send_timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning(
                "hub_send_timeout",
                client_id=client.client_id,
                message_type=message.get("type"),
            )
        except Exception as e:
            logger.warning(
                "hub_send_failed",
                client_id=client.client_id,
                message_type=message.get("type"),
                error=str(e),
            )
        return False

    async def _broadcast(self, device_id: str, message_type: str, data: Any) -> int:
        recipients = [
            self._clients[client_id]
            for client_id in list(self._clients_by_device.get(device_id, ()))
            if client_id in self._clients
        ]
        if not recipients:
            return 0

        message = frame(message_type, data)
        results = await asyncio.gather(*(self._deliver(c, message) for c in recipients))
        delivered = sum(results)

        logger.debug(
            "hub_broadcast",
            device_id=device_id,
            message_type=message_type,
            recipients=len(recipients),
            delivered=delivered,
        )
        return delivered

    async def broadcast_realtime(self, device_id: str, data: Any) -> int:
        """Push a real-time snapshot to the subscribers of a device."""
        return await self._broadcast(device_id, RECEIVE_REALTIME_DATA, data)

    async def broadcast_cell_data(self, device_id: str, data: Any) -> int:
        """Push battery cell data to the subscribers of a device."""
        return await self._broadcast(device_id, RECEIVE_BATTERY_CELL_DATA, data)

    async def broadcast_soc(self, device_id: str, data: Any) -> int:
        """Push an SOC timeline to the subscribers of a device."""
        return await self._broadcast(device_id, RECEIVE_SOC_DATA, data)
