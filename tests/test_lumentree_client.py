"""Tests for the Lumentree HTTP client."""

import asyncio
from datetime import date
from urllib.parse import parse_qs

import httpx
import pytest

from conftest import BASE_URL, WEB_URL, envelope, make_client
from lumentree.core import LumentreeClient
from lumentree.core.exceptions import (
    AuthFailure,
    InvalidRequestError,
    LumentreeAPIError,
    UpstreamConnectError,
    UpstreamTimeoutError,
)

DAY = date(2024, 1, 15)


class VendorStub:
    """Minimal vendor API keyed by path."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.tokens_issued = 0
        self.reject_next: int | None = None
        self.routes = {
            "/lesvr/getServerTime": lambda r: envelope({"serverTime": 1700000000}),
            "/lesvr/shareDevices": self._share,
            "/lesvr/deviceManage": lambda r: envelope(
                {"devices": [{"deviceId": "P1", "deviceType": "4KW", "onlineStatus": 1}]}
            ),
            "/lesvr/getPVDayData": lambda r: envelope(
                {"pv": {"tableKey": "pv", "tableName": "PV", "tableValue": 123, "tableValueInfo": [1, 2]}}
            ),
            "/lesvr/getBatDayData": lambda r: envelope(
                {
                    "bats": [
                        {"tableKey": "charge", "tableName": "Charge", "tableValue": 45},
                        {"tableKey": "discharge", "tableName": "Discharge", "tableValue": 32},
                    ],
                    "tableValueInfo": [5, 6],
                }
            ),
            "/lesvr/getOtherDayData": lambda r: envelope(
                {
                    "essentialLoad": {"tableValue": 20, "tableValueInfo": [1]},
                    "grid": {"tableKey": "grid", "tableName": "Grid", "tableValue": 15},
                    "homeload": {"tableValue": 88},
                }
            ),
        }

    def _share(self, request: httpx.Request) -> dict:
        self.tokens_issued += 1
        return envelope({"token": f"tok-{self.tokens_issued}"})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.reject_next and request.url.path != "/lesvr/shareDevices" and (
            request.url.path != "/lesvr/getServerTime"
        ):
            status = self.reject_next
            self.reject_next = None
            return httpx.Response(status, json={"msg": "token expired"})
        route = self.routes.get(request.url.path)
        if route is None:
            return httpx.Response(404)
        return httpx.Response(200, json=route(request))

    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]


@pytest.fixture
def vendor() -> VendorStub:
    """Vendor API stub."""
    return VendorStub()


@pytest.mark.asyncio
async def test_generate_token_signs_with_server_time(vendor: VendorStub) -> None:
    """Test token generation flow."""
    client = make_client(vendor)

    token = await client.generate_token("P1")

    assert token == "tok-1"
    assert vendor.paths() == ["/lesvr/getServerTime", "/lesvr/shareDevices"]
    form = parse_qs(vendor.requests[1].content.decode())
    assert form == {"deviceIds": ["P1"], "serverTime": ["1700000000"]}
    assert vendor.requests[0].headers["platform"] == "2"


@pytest.mark.asyncio
async def test_generate_token_refused(vendor: VendorStub) -> None:
    """Test that a refused share request is an AuthFailure."""
    vendor.routes["/lesvr/shareDevices"] = lambda r: envelope(None, return_value=0)
    client = make_client(vendor)

    with pytest.raises(AuthFailure):
        await client.generate_token("P1")


@pytest.mark.asyncio
async def test_tables_use_cached_token(vendor: VendorStub) -> None:
    """Test that one token serves several table calls."""
    client = make_client(vendor)

    pv = await client.get_pv_day_data("P1", DAY)
    bat = await client.get_bat_day_data("P1", DAY)

    assert pv is not None and pv.table_value == 123
    assert bat is not None
    assert bat.charge is not None and bat.charge.table_value == 45
    assert bat.discharge is not None and bat.discharge.table_value == 32
    assert vendor.tokens_issued == 1

    table_requests = [r for r in vendor.requests if r.url.path.startswith("/lesvr/get") and "Day" in r.url.path]
    assert all(r.headers["Authorization"] == "tok-1" for r in table_requests)
    assert table_requests[0].url.params["queryDate"] == "2024-01-15"


@pytest.mark.asyncio
async def test_get_device_info(vendor: VendorStub) -> None:
    """Test device info parsing keeps unknown fields."""
    vendor.routes["/lesvr/deviceManage"] = lambda r: envelope(
        {"devices": [{"deviceId": "P1", "deviceType": "4KW", "batteryType": "LFP"}]}
    )
    client = make_client(vendor)

    info = await client.get_device_info("P1")

    assert info is not None
    assert info.device_id == "P1"
    assert info.to_json_dict()["batteryType"] == "LFP"


@pytest.mark.asyncio
async def test_get_device_info_unknown(vendor: VendorStub) -> None:
    """Test that an empty device list means unknown device."""
    vendor.routes["/lesvr/deviceManage"] = lambda r: envelope({"devices": []})
    client = make_client(vendor)

    assert await client.get_device_info("P1") is None


@pytest.mark.asyncio
async def test_get_other_day_data(vendor: VendorStub) -> None:
    """Test that the three load tables parse independently with defaults."""
    client = make_client(vendor)

    tables = await client.get_other_day_data("P1", DAY)

    assert tables["essential_load"] is not None
    assert tables["essential_load"].table_key == "essentialload"
    assert tables["essential_load"].table_value == 20
    assert tables["grid"] is not None and tables["grid"].table_value == 15
    assert tables["load"] is not None
    assert tables["load"].table_name == "HomeLoad"
    assert tables["load"].table_value == 88


@pytest.mark.asyncio
async def test_get_other_day_data_partial(vendor: VendorStub) -> None:
    """Test that a missing table is None without affecting the others."""
    vendor.routes["/lesvr/getOtherDayData"] = lambda r: envelope(
        {"grid": {"tableValue": 7}}
    )
    client = make_client(vendor)

    tables = await client.get_other_day_data("P1", DAY)

    assert tables["grid"] is not None and tables["grid"].table_value == 7
    assert tables["essential_load"] is None
    assert tables["load"] is None


@pytest.mark.asyncio
async def test_rejected_token_renewed_once(vendor: VendorStub) -> None:
    """Test that a 401 invalidates the token and the call is retried."""
    client = make_client(vendor)
    await client.tokens.get_token("P1")
    vendor.reject_next = 401

    pv = await client.get_pv_day_data("P1", DAY)

    assert pv is not None
    assert vendor.tokens_issued == 2
    assert client.tokens.peek("P1") == "tok-2"


@pytest.mark.asyncio
async def test_error_envelope_raises(vendor: VendorStub) -> None:
    """Test that a non-success returnValue is an upstream error."""
    vendor.routes["/lesvr/getPVDayData"] = lambda r: {"returnValue": 0, "msg": "no data"}
    client = make_client(vendor)

    with pytest.raises(LumentreeAPIError) as exc_info:
        await client.get_pv_day_data("P1", DAY)

    assert exc_info.value.code == "UPSTREAM_ERROR"
    assert exc_info.value.status_code == 502


@pytest.mark.asyncio
async def test_timeout_classified() -> None:
    """Test that an httpx timeout becomes UpstreamTimeoutError."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    client = make_client(handler)

    with pytest.raises(UpstreamTimeoutError) as exc_info:
        await client.fetch_monthly("P1")

    assert exc_info.value.status_code == 504


@pytest.mark.asyncio
async def test_connect_error_classified() -> None:
    """Test that a connection failure becomes UpstreamConnectError."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("name resolution failed", request=request)

    client = make_client(handler)

    with pytest.raises(UpstreamConnectError) as exc_info:
        await client.fetch_soc("P1", DAY)

    assert exc_info.value.status_code == 502


@pytest.mark.asyncio
async def test_passthrough_urls() -> None:
    """Test the lumentree.net proxy URLs."""
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, json={"ok": True})

    client = make_client(handler)

    monthly = await client.fetch_monthly("P1")
    soc = await client.fetch_soc("P1", DAY)

    assert monthly.status_code == 200
    assert soc.json() == {"ok": True}
    assert seen == [f"{WEB_URL}/api/monthly/P1", f"{WEB_URL}/api/soc/P1/2024-01-15"]


@pytest.mark.asyncio
async def test_passthrough_urls_escape_device_id() -> None:
    """Test that reserved characters stay inside the device path segment."""
    seen: list[bytes] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.raw_path)
        return httpx.Response(200, json={"ok": True})

    client = make_client(handler)

    await client.fetch_soc("P1?x=", DAY)
    await client.fetch_monthly("P1/../admin")
    await client.get_soc_timeline("P1#frag", DAY)

    assert seen == [
        b"/api/soc/P1%3Fx%3D/2024-01-15",
        b"/api/monthly/P1%2F..%2Fadmin",
        b"/api/soc/P1%23frag/2024-01-15",
    ]


@pytest.mark.asyncio
async def test_feed_templates_escape_device_id() -> None:
    """Test that the real-time and cell feed templates get an encoded segment."""
    seen: list[bytes] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.raw_path)
        return httpx.Response(200, json={})

    client = make_client(handler)

    await client.get_realtime_data("P1#x")
    await client.get_battery_cells("P 1")

    assert seen == [b"/api/realtime/P1%23x", b"/api/cells/P%201"]


@pytest.mark.asyncio
async def test_dot_segment_device_id_rejected() -> None:
    """Test that "." and ".." are refused before any request is sent."""
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={})

    client = make_client(handler)

    with pytest.raises(InvalidRequestError):
        await client.fetch_monthly("..")
    with pytest.raises(InvalidRequestError):
        await client.get_battery_cells(".")

    assert seen == []


@pytest.mark.asyncio
async def test_concurrent_tables_share_failed_authentication(vendor: VendorStub) -> None:
    """Test that concurrent table fetches trigger one refused share request."""
    vendor.routes["/lesvr/shareDevices"] = lambda r: envelope(None, return_value=0)
    client = make_client(vendor)

    results = await asyncio.gather(
        client.get_pv_day_data("P1", DAY),
        client.get_bat_day_data("P1", DAY),
        client.get_other_day_data("P1", DAY),
        client.get_device_info("P1"),
        return_exceptions=True,
    )

    assert vendor.paths().count("/lesvr/shareDevices") == 1
    assert all(isinstance(r, AuthFailure) for r in results)


@pytest.mark.asyncio
async def test_realtime_feed_error_status() -> None:
    """Test that the realtime feed raises on an HTTP error."""
    client = make_client(lambda request: httpx.Response(503))

    with pytest.raises(LumentreeAPIError):
        await client.get_realtime_data("P1")


@pytest.mark.asyncio
async def test_close_keeps_injected_client() -> None:
    """Test that close() leaves an injected httpx client open."""
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
    async with LumentreeClient(BASE_URL, WEB_URL, http_client=http_client):
        pass

    assert not http_client.is_closed
    await http_client.aclose()
