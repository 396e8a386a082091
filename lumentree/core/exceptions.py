"""Error taxonomy for the gateway.

Every error carries a stable ``code`` for programmatic handling and the HTTP
status the boundary should answer with. Messages shown to users are in
Vietnamese, like the dashboard they serve.
"""

from typing import Any


class LumentreeError(Exception):
    """Base class for all gateway errors."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        device_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize gateway error.

        Args:
            message: Human-readable message
            code: Override of the class error code
            device_id: Device the error relates to
            details: Extra fields merged into the JSON error body
        """
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.device_id = device_id
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Render the JSON error body."""
        body: dict[str, Any] = {"error": self.message, "code": self.code}
        if self.device_id is not None:
            body["deviceId"] = self.device_id
        body.update(self.details)
        return body


class InvalidRequestError(LumentreeError):
    """Missing or malformed request input."""

    status_code = 400
    code = "INVALID_REQUEST"


class DeviceNotFoundError(LumentreeError):
    """Device info could not be retrieved upstream."""

    status_code = 404
    code = "DEVICE_NOT_FOUND"

    SUGGESTIONS = [
        "Kiểm tra lại Device ID (ví dụ: P250812032)",
        "Thử tải lại trang sau vài giây",
        "Server Lumentree có thể đang bảo trì",
    ]

    def __init__(self, device_id: str) -> None:
        super().__init__(
            f'Không tìm thấy thiết bị "{device_id}".',
            device_id=device_id,
            details={
                "message": (
                    "Hệ thống không thể kết nối đến server Lumentree "
                    "hoặc Device ID không hợp lệ."
                ),
                "suggestions": list(self.SUGGESTIONS),
                "canRetry": True,
            },
        )


class NoDataError(LumentreeError):
    """Device resolved but has no energy data for the requested day."""

    status_code = 404
    code = "NO_DATA"


class LumentreeAPIError(LumentreeError):
    """Upstream answered with a non-success envelope or status."""

    status_code = 502
    code = "UPSTREAM_ERROR"

    def __init__(
        self,
        message: str,
        *,
        return_value: Any = None,
        http_status: int | None = None,
        endpoint: str | None = None,
        device_id: str | None = None,
    ) -> None:
        super().__init__(message, device_id=device_id)
        self.return_value = return_value
        self.http_status = http_status
        self.endpoint = endpoint


class AuthFailure(LumentreeError):
    """Token generation failed upstream."""

    status_code = 502
    code = "AUTH_FAILED"


class UpstreamConnectError(LumentreeError):
    """Upstream could not be reached."""

    status_code = 502
    code = "UPSTREAM_CONNECT_FAILURE"


class UpstreamTimeoutError(LumentreeError):
    """Upstream did not answer within the configured timeout."""

    status_code = 504
    code = "UPSTREAM_TIMEOUT"
