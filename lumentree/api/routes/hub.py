"""WebSocket endpoint of the device subscription hub."""

import asyncio
import json
import uuid
from typing import Any

import structlog
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from lumentree.api.dependencies import get_hub, get_realtime_poller
from lumentree.api.schemas import HubRequest
from lumentree.core import LumentreeError, RealtimePoller, SubscriptionHub
from lumentree.core.hub import ERROR, SUBSCRIPTION_CONFIRMED, frame

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["hub"])

SUBSCRIBE_TO_DEVICE = "SubscribeToDevice"
UNSUBSCRIBE_FROM_DEVICE = "UnsubscribeFromDevice"
REQUEST_BATTERY_CELL_DATA = "RequestBatteryCellData"


class WebSocketClient:
    """Hub client backed by a FastAPI WebSocket."""

    def __init__(self, websocket: WebSocket) -> None:
        self.client_id = uuid.uuid4().hex
        self.websocket = websocket

    async def send(self, message: dict[str, Any]) -> None:
        await self.websocket.send_json(message)


async def _send_error(client: WebSocketClient, message: str, code: str) -> None:
    await client.send(frame(ERROR, {"error": message, "code": code}))


async def _push_cells(
    client: WebSocketClient, device_id: str, poller: RealtimePoller
) -> None:
    try:
        try:
            await poller.push_battery_cells(client.client_id, device_id)
        except LumentreeError as e:
            logger.warning(
                "hub_cell_request_failed",
                client_id=client.client_id,
                device_id=device_id,
                error=e.message,
            )
            await client.send(frame(ERROR, e.to_dict()))
    except Exception as e:
        # Runs detached from the receive loop
        logger.error(
            "hub_cell_request_error",
            client_id=client.client_id,
            device_id=device_id,
            error=str(e),
            exc_info=True,
        )


async def _handle(
    client: WebSocketClient,
    request: HubRequest,
    hub: SubscriptionHub,
    poller: RealtimePoller,
    pending: set[asyncio.Task[None]],
) -> None:
    device_id = request.target_device

    if request.type == SUBSCRIBE_TO_DEVICE:
        if device_id is None:
            await _send_error(client, "Device ID is required", "MISSING_DEVICE_ID")
            return
        hub.subscribe(client.client_id, device_id)
        await client.send(frame(SUBSCRIPTION_CONFIRMED, device_id))

    elif request.type == UNSUBSCRIBE_FROM_DEVICE:
        if device_id is None:
            device_id = hub.device_for(client.client_id)
        if device_id is not None:
            hub.unsubscribe(client.client_id, device_id)

    elif request.type == REQUEST_BATTERY_CELL_DATA:
        device_id = device_id or hub.device_for(client.client_id)
        if device_id is None:
            await _send_error(client, "Device ID is required", "MISSING_DEVICE_ID")
            return
        # Cell fetches run beside the receive loop
        task = asyncio.create_task(_push_cells(client, device_id, poller))
        pending.add(task)
        task.add_done_callback(pending.discard)

    else:
        await _send_error(client, f"Unknown message type: {request.type}", "UNKNOWN_MESSAGE")


@router.websocket("/deviceHub")
async def device_hub(
    websocket: WebSocket,
    hub: SubscriptionHub = Depends(get_hub),
    poller: RealtimePoller = Depends(get_realtime_poller),
) -> None:
    """Push channel: clients subscribe to one device and receive its live data.

    Frames are JSON objects ``{"type": ..., "data": ...}`` in both directions.
    """
    await websocket.accept()
    client = WebSocketClient(websocket)
    hub.connect(client)
    pending: set[asyncio.Task[None]] = set()

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                request = HubRequest.model_validate(json.loads(raw))
            except (ValueError, ValidationError):
                logger.warning("hub_frame_invalid", client_id=client.client_id)
                await _send_error(client, "Invalid message", "INVALID_MESSAGE")
                continue
            await _handle(client, request, hub, poller, pending)
    except WebSocketDisconnect:
        pass
    finally:
        for task in pending:
            task.cancel()
        hub.disconnect(client.client_id)
