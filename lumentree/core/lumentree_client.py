"""HTTP client for the Lumentree cloud API.

Talks to two upstreams:

- the vendor app API (``lesvr.suntcn.com``): token generation and the daily
  PV / battery / load tables, authenticated with a per-device token;
- the lumentree.net REST API: monthly statistics, SOC timeline and the
  real-time feeds, which are passed through as opaque JSON.
"""

from datetime import date
from typing import Any
from urllib.parse import quote

import httpx
import structlog
from pydantic import ValidationError

from lumentree.config import Settings, get_settings
from lumentree.core.exceptions import (
    AuthFailure,
    InvalidRequestError,
    LumentreeAPIError,
    UpstreamConnectError,
    UpstreamTimeoutError,
)
from lumentree.core.token_cache import TokenCache
from lumentree.models.lumentree_api import BatData, DeviceInfo, LoadInfo, PVInfo

logger = structlog.get_logger(__name__)

URL_GET_SERVER_TIME = "/lesvr/getServerTime"
URL_SHARE_DEVICES = "/lesvr/shareDevices"
URL_DEVICE_MANAGE = "/lesvr/deviceManage"
URL_GET_PV_DAY_DATA = "/lesvr/getPVDayData"
URL_GET_BAT_DAY_DATA = "/lesvr/getBatDayData"
URL_GET_OTHER_DAY_DATA = "/lesvr/getOtherDayData"

RETURN_VALUE_OK = 1

# (wire keys tried in order, default tableKey, default tableName)
OTHER_TABLES: dict[str, tuple[tuple[str, ...], str, str]] = {
    "essential_load": (
        ("essentialLoad", "essentialload"),
        "essentialload",
        "EssentialLoad",
    ),
    "grid": (("grid",), "grid", "Grid"),
    "load": (("homeload", "homeLoad", "load"), "homeload", "HomeLoad"),
}


def _path_segment(device_id: str) -> str:
    """Encode a device ID as one URL path segment."""
    if device_id in (".", ".."):
        raise InvalidRequestError(
            f"Device ID không hợp lệ: {device_id}", code="INVALID_DEVICE_ID"
        )
    return quote(device_id, safe="")


class LumentreeClient:
    """Async client for the Lumentree APIs.

    Owns one ``httpx.AsyncClient`` (created lazily unless injected) and the
    token cache used to authenticate vendor calls.
    """

    def __init__(
        self,
        base_url: str = "http://lesvr.suntcn.com",
        web_url: str = "https://lumentree.net",
        *,
        timeout: float = 10.0,
        monthly_timeout: float = 30.0,
        soc_timeout: float = 15.0,
        token_ttl: float = 3600.0,
        app_version: str = "1.6.3",
        realtime_path: str = "/api/realtime/{device_id}",
        cells_path: str = "/api/cells/{device_id}",
        http_client: httpx.AsyncClient | None = None,
        token_cache: TokenCache | None = None,
    ) -> None:
        """Initialize Lumentree client.

        Args:
            base_url: Vendor app API base URL
            web_url: lumentree.net base URL
            timeout: Timeout for vendor calls in seconds
            monthly_timeout: Timeout for the monthly statistics proxy
            soc_timeout: Timeout for the SOC timeline proxy
            token_ttl: Lifetime of a device token in seconds
            app_version: Version reported in the vendor app headers
            realtime_path: lumentree.net path template of the real-time feed
            cells_path: lumentree.net path template of the battery cell feed
            http_client: Optional injected httpx client (not closed by us)
            token_cache: Optional injected token cache
        """
        self.base_url = base_url.rstrip("/")
        self.web_url = web_url.rstrip("/")
        self.timeout = timeout
        self.monthly_timeout = monthly_timeout
        self.soc_timeout = soc_timeout
        self.realtime_path = realtime_path
        self.cells_path = cells_path
        self.headers = {
            "versionCode": app_version,
            "platform": "2",
            "wifiStatus": "1",
            "User-Agent": (
                "Mozilla/5.0 (Linux; Android 10; SM-G970F) AppleWebKit/537.36 "
                "(KHTML, like Gecko) Chrome/91.0.4472.120 Mobile Safari/537.36"
            ),
            "Accept": "application/json, text/plain, */*",
        }

        self._http_client = http_client
        self._owns_http_client = http_client is None
        self.tokens = token_cache or TokenCache(self.generate_token, ttl=token_ttl)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "LumentreeClient":
        """Build a client from application settings."""
        config = (settings or get_settings()).lumentree
        return cls(
            base_url=config.base_url,
            web_url=config.web_url,
            timeout=config.timeout,
            monthly_timeout=config.monthly_timeout,
            soc_timeout=config.soc_timeout,
            token_ttl=config.token_ttl,
            app_version=config.app_version,
            realtime_path=config.realtime_path,
            cells_path=config.cells_path,
        )

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=self.timeout,
                headers=self.headers,
                follow_redirects=True,
            )
            self._owns_http_client = True
        return self._http_client

    async def _send(
        self,
        method: str,
        url: str,
        *,
        timeout: float | None = None,
        device_id: str | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send one request, classifying transport failures.

        Raises:
            UpstreamTimeoutError: If the request exceeds its timeout
            UpstreamConnectError: On any other transport failure
        """
        http_client = await self._get_http_client()
        headers = {**self.headers, **(kwargs.pop("headers", None) or {})}
        try:
            return await http_client.request(
                method,
                url,
                headers=headers,
                timeout=timeout if timeout is not None else self.timeout,
                **kwargs,
            )
        except httpx.TimeoutException as e:
            logger.warning("lumentree_request_timeout", url=url, device_id=device_id)
            raise UpstreamTimeoutError(
                "Yêu cầu tới server Lumentree đã hết thời gian chờ.",
                device_id=device_id,
            ) from e
        except httpx.TransportError as e:
            logger.warning(
                "lumentree_request_connect_error",
                url=url,
                device_id=device_id,
                error=str(e),
            )
            raise UpstreamConnectError(
                f"Không thể kết nối đến server Lumentree: {e}",
                device_id=device_id,
            ) from e

    @staticmethod
    def _unwrap(response: httpx.Response, endpoint: str, device_id: str | None) -> Any:
        """Check the vendor envelope and return its ``data`` member.

        Raises:
            LumentreeAPIError: On HTTP error status, bad JSON or a
                non-success ``returnValue``
        """
        if response.is_error:
            raise LumentreeAPIError(
                f"Server Lumentree trả về lỗi HTTP {response.status_code}.",
                http_status=response.status_code,
                endpoint=endpoint,
                device_id=device_id,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise LumentreeAPIError(
                "Phản hồi từ server Lumentree không phải JSON hợp lệ.",
                http_status=response.status_code,
                endpoint=endpoint,
                device_id=device_id,
            ) from e

        if not isinstance(payload, dict):
            raise LumentreeAPIError(
                "Phản hồi từ server Lumentree không đúng định dạng.",
                endpoint=endpoint,
                device_id=device_id,
            )

        return_value = payload.get("returnValue")
        if return_value != RETURN_VALUE_OK:
            logger.warning(
                "lumentree_api_error",
                endpoint=endpoint,
                device_id=device_id,
                return_value=return_value,
                msg=payload.get("msg"),
            )
            raise LumentreeAPIError(
                f"Server Lumentree báo lỗi: {payload.get('msg') or return_value}",
                return_value=return_value,
                endpoint=endpoint,
                device_id=device_id,
            )

        return payload.get("data")

    # Authentication

    async def get_server_time(self) -> Any:
        """Fetch the vendor server time used to sign token requests."""
        response = await self._send("GET", f"{self.base_url}{URL_GET_SERVER_TIME}")
        data = self._unwrap(response, URL_GET_SERVER_TIME, None)
        if not isinstance(data, dict) or "serverTime" not in data:
            raise LumentreeAPIError(
                "Không lấy được thời gian server Lumentree.",
                endpoint=URL_GET_SERVER_TIME,
            )
        return data["serverTime"]

    async def generate_token(self, device_id: str) -> str:
        """Generate a fresh token for a device (bypasses the cache).

        Args:
            device_id: Device ID

        Returns:
            Token string

        Raises:
            AuthFailure: If the vendor refuses to share the device
        """
        server_time = await self.get_server_time()
        response = await self._send(
            "POST",
            f"{self.base_url}{URL_SHARE_DEVICES}",
            data={"deviceIds": device_id, "serverTime": str(server_time)},
            device_id=device_id,
        )
        try:
            data = self._unwrap(response, URL_SHARE_DEVICES, device_id)
        except LumentreeAPIError as e:
            raise AuthFailure(
                f"Không thể tạo token cho thiết bị {device_id}: {e.message}",
                device_id=device_id,
            ) from e

        token = data.get("token") if isinstance(data, dict) else None
        if not token:
            raise AuthFailure(
                f"Server Lumentree không trả về token cho thiết bị {device_id}.",
                device_id=device_id,
            )

        logger.info("lumentree_token_generated", device_id=device_id)
        return str(token)

    async def _authed_request(
        self,
        method: str,
        endpoint: str,
        device_id: str,
        **kwargs: Any,
    ) -> Any:
        """Call a vendor endpoint with the device token.

        A 401/403 answer invalidates the token and the call is retried once
        with a renewed one.
        """
        url = f"{self.base_url}{endpoint}"
        token = await self.tokens.get_token(device_id)
        response = await self._send(
            method, url, headers={"Authorization": token}, device_id=device_id, **kwargs
        )

        if response.status_code in (401, 403):
            logger.info(
                "lumentree_token_rejected",
                device_id=device_id,
                endpoint=endpoint,
                status_code=response.status_code,
            )
            self.tokens.invalidate(device_id, token)
            token = await self.tokens.get_token(device_id)
            response = await self._send(
                method, url, headers={"Authorization": token}, device_id=device_id, **kwargs
            )

        return self._unwrap(response, endpoint, device_id)

    # Vendor tables

    async def get_device_info(self, device_id: str) -> DeviceInfo | None:
        """Fetch device metadata.

        Returns:
            Device info, or None if the vendor does not know the device
        """
        data = await self._authed_request(
            "POST",
            URL_DEVICE_MANAGE,
            device_id,
            data={"page": "1", "snMsg": device_id},
        )
        devices = data.get("devices") if isinstance(data, dict) else None
        if not devices:
            logger.info("lumentree_device_unknown", device_id=device_id)
            return None

        raw = next(
            (d for d in devices if isinstance(d, dict) and d.get("deviceId") == device_id),
            devices[0],
        )
        try:
            return DeviceInfo.model_validate(raw)
        except ValidationError as e:
            logger.warning("lumentree_device_info_invalid", device_id=device_id, error=str(e))
            return None

    async def get_pv_day_data(self, device_id: str, day: date) -> PVInfo | None:
        """Fetch the PV table of one day."""
        data = await self._authed_request(
            "GET",
            URL_GET_PV_DAY_DATA,
            device_id,
            params={"deviceId": device_id, "queryDate": day.isoformat()},
        )
        raw = data.get("pv") if isinstance(data, dict) else None
        if not isinstance(raw, dict):
            return None
        return PVInfo.model_validate(raw)

    async def get_bat_day_data(self, device_id: str, day: date) -> BatData | None:
        """Fetch the battery table of one day."""
        data = await self._authed_request(
            "GET",
            URL_GET_BAT_DAY_DATA,
            device_id,
            params={"deviceId": device_id, "queryDate": day.isoformat()},
        )
        if not isinstance(data, dict) or not isinstance(data.get("bats"), list):
            return None
        return BatData.model_validate(
            {"bats": data["bats"], "tableValueInfo": data.get("tableValueInfo") or []}
        )

    async def get_other_day_data(
        self, device_id: str, day: date
    ) -> dict[str, LoadInfo | None]:
        """Fetch essential load, grid and home load tables of one day.

        One upstream call serves the three tables; each one is parsed on its
        own and is None when missing or malformed.

        Returns:
            Mapping with keys ``essential_load``, ``grid`` and ``load``
        """
        data = await self._authed_request(
            "GET",
            URL_GET_OTHER_DAY_DATA,
            device_id,
            params={"deviceId": device_id, "queryDate": day.isoformat()},
        )
        data = data if isinstance(data, dict) else {}

        tables: dict[str, LoadInfo | None] = {}
        for name, (wire_keys, default_key, default_name) in OTHER_TABLES.items():
            raw = next((data[k] for k in wire_keys if isinstance(data.get(k), dict)), None)
            if raw is None:
                tables[name] = None
                continue
            try:
                tables[name] = LoadInfo.model_validate(
                    {"tableKey": default_key, "tableName": default_name, **raw}
                )
            except ValidationError as e:
                logger.warning(
                    "lumentree_table_invalid",
                    device_id=device_id,
                    table=name,
                    error=str(e),
                )
                tables[name] = None
        return tables

    # lumentree.net passthrough

    async def fetch_monthly(self, device_id: str) -> httpx.Response:
        """GET /api/monthly/{device_id}, returned untouched."""
        return await self._send(
            "GET",
            f"{self.web_url}/api/monthly/{_path_segment(device_id)}",
            timeout=self.monthly_timeout,
            device_id=device_id,
        )

    async def fetch_soc(self, device_id: str, day: date) -> httpx.Response:
        """GET /api/soc/{device_id}/{date}, returned untouched."""
        return await self._send(
            "GET",
            f"{self.web_url}/api/soc/{_path_segment(device_id)}/{day.isoformat()}",
            timeout=self.soc_timeout,
            device_id=device_id,
        )

    async def _get_web_json(self, url: str, device_id: str, timeout: float) -> Any:
        response = await self._send("GET", url, timeout=timeout, device_id=device_id)
        if response.is_error:
            raise LumentreeAPIError(
                f"lumentree.net trả về lỗi HTTP {response.status_code}.",
                http_status=response.status_code,
                endpoint=url,
                device_id=device_id,
            )
        try:
            return response.json()
        except ValueError as e:
            raise LumentreeAPIError(
                "Phản hồi từ lumentree.net không phải JSON hợp lệ.",
                endpoint=url,
                device_id=device_id,
            ) from e

    async def get_realtime_data(self, device_id: str) -> Any:
        """Current power flow snapshot of a device (opaque JSON)."""
        path = self.realtime_path.format(device_id=_path_segment(device_id))
        return await self._get_web_json(f"{self.web_url}{path}", device_id, self.timeout)

    async def get_battery_cells(self, device_id: str) -> Any:
        """Battery cell voltages of a device (opaque JSON)."""
        path = self.cells_path.format(device_id=_path_segment(device_id))
        return await self._get_web_json(f"{self.web_url}{path}", device_id, self.timeout)

    async def get_soc_timeline(self, device_id: str, day: date) -> Any:
        """SOC timeline of one day (opaque JSON)."""
        url = f"{self.web_url}/api/soc/{_path_segment(device_id)}/{day.isoformat()}"
        return await self._get_web_json(url, device_id, self.soc_timeout)

    async def close(self) -> None:
        """Close the HTTP client if we created it and drop cached tokens."""
        if self._http_client is not None and self._owns_http_client:
            await self._http_client.aclose()
            self._http_client = None
        self.tokens.clear()

    async def __aenter__(self) -> "LumentreeClient":
        """Context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit."""
        await self.close()
