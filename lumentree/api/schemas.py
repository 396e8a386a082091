"""Pydantic schemas for API requests and responses."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ErrorResponse(BaseModel):
    """JSON error body shared by every endpoint."""

    model_config = ConfigDict(extra="allow")

    error: str = Field(description="Human-readable message (Vietnamese)")
    code: str = Field(description="Stable error code")


class HealthResponse(BaseModel):
    """Response schema for the health check."""

    status: str
    version: str
    hub_clients: int
    subscribed_devices: int
    scheduler_running: bool


class ProbeResult(BaseModel):
    """Outcome of one connectivity probe; extra fields carry probe details."""

    model_config = ConfigDict(extra="allow")

    success: bool
    error: str | None = None


class ConnectivityResponse(BaseModel):
    """Response schema for the upstream connectivity check."""

    dns_resolution: ProbeResult
    lumentree_api: ProbeResult
    token_generation: ProbeResult


class HubRequest(BaseModel):
    """Client-to-server hub frame.

    The device may be given either as ``data`` or ``deviceId``.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    type: str
    data: Any = None
    device_id: str | None = None

    @property
    def target_device(self) -> str | None:
        """Device ID named by the frame, if any."""
        candidate = self.device_id if self.device_id is not None else self.data
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip()
        return None
