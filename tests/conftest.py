"""Shared pytest fixtures."""

import os

# Must be set before lumentree is imported: the limiter and app read them once
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["REALTIME_ENABLED"] = "false"
os.environ["APP_ENV"] = "test"

import asyncio  # noqa: E402
from collections.abc import Callable  # noqa: E402
from datetime import date  # noqa: E402
from typing import Any  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402

from lumentree.core import LumentreeClient  # noqa: E402
from lumentree.models import BatData, BatInfo, DeviceInfo, LoadInfo, PVInfo  # noqa: E402


class FakeClient:
    """Hub client recording the frames it receives."""

    def __init__(self, client_id: str, fail: bool = False, delay: float = 0.0) -> None:
        self.client_id = client_id
        self.fail = fail
        self.delay = delay
        self.messages: list[dict[str, Any]] = []

    async def send(self, message: dict[str, Any]) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise ConnectionError("socket closed")
        self.messages.append(message)


BASE_URL = "http://lesvr.test"
WEB_URL = "https://web.test"


def envelope(data: Any, return_value: int = 1) -> dict[str, Any]:
    """Vendor API response envelope."""
    return {"returnValue": return_value, "msg": "ok", "data": data}


def make_client(handler: Callable[[httpx.Request], httpx.Response]) -> LumentreeClient:
    """LumentreeClient talking to a MockTransport."""
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return LumentreeClient(BASE_URL, WEB_URL, http_client=http_client)


@pytest.fixture
def sample_device_info() -> DeviceInfo:
    """Device info as returned by deviceManage."""
    return DeviceInfo.model_validate(
        {
            "deviceId": "P250801055",
            "deviceType": "SUNT-4.0KW-H",
            "remarkName": "Nhà",
            "onlineStatus": 1,
            "sn": "SN123",
        }
    )


@pytest.fixture
def sample_pv() -> PVInfo:
    """PV table with 12.3 kWh."""
    return PVInfo(table_key="pv", table_name="PV", table_value=123, table_value_info=[0, 5, 9])


@pytest.fixture
def sample_bat() -> BatData:
    """Battery table with 4.5 kWh charged and 3.2 kWh discharged."""
    return BatData(
        bats=[
            BatInfo(table_key="charge", table_name="Charge", table_value=45),
            BatInfo(table_key="discharge", table_name="Discharge", table_value=32),
        ],
        table_value_info=[1, 2],
    )


@pytest.fixture
def sample_tables() -> dict[str, LoadInfo | None]:
    """Essential load, grid and home load tables."""
    return {
        "essential_load": LoadInfo(
            table_key="essentialload", table_name="EssentialLoad", table_value=20
        ),
        "grid": LoadInfo(table_key="grid", table_name="Grid", table_value=15),
        "load": LoadInfo(table_key="homeload", table_name="HomeLoad", table_value=88),
    }


@pytest.fixture
def mock_lumentree_client(
    sample_device_info: DeviceInfo,
    sample_pv: PVInfo,
    sample_bat: BatData,
    sample_tables: dict[str, LoadInfo | None],
) -> MagicMock:
    """Mock LumentreeClient returning a complete day of data."""
    client = MagicMock(spec=LumentreeClient)
    client.get_device_info = AsyncMock(return_value=sample_device_info)
    client.get_pv_day_data = AsyncMock(return_value=sample_pv)
    client.get_bat_day_data = AsyncMock(return_value=sample_bat)
    client.get_other_day_data = AsyncMock(return_value=sample_tables)
    client.get_realtime_data = AsyncMock(return_value={"pvPower": 1200})
    client.get_battery_cells = AsyncMock(return_value={"cells": [3.31, 3.32]})
    client.get_soc_timeline = AsyncMock(return_value={"history": [{"soc": 80, "t": "00:00"}]})
    client.fetch_monthly = AsyncMock()
    client.fetch_soc = AsyncMock()
    client.close = AsyncMock()
    return client


@pytest.fixture
def fixed_day() -> date:
    """A fixed query day."""
    return date(2024, 1, 15)
