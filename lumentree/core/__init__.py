"""Core gateway logic: upstream client, token cache, aggregation, push."""

from lumentree.core.device_service import DeviceDataService
from lumentree.core.exceptions import (
    AuthFailure,
    DeviceNotFoundError,
    InvalidRequestError,
    LumentreeAPIError,
    LumentreeError,
    NoDataError,
    UpstreamConnectError,
    UpstreamTimeoutError,
)
from lumentree.core.hub import SubscriptionHub
from lumentree.core.lumentree_client import LumentreeClient
from lumentree.core.realtime import RealtimePoller
from lumentree.core.token_cache import TokenCache

__all__ = [
    "LumentreeClient",
    "TokenCache",
    "DeviceDataService",
    "SubscriptionHub",
    "RealtimePoller",
    "LumentreeError",
    "InvalidRequestError",
    "DeviceNotFoundError",
    "NoDataError",
    "AuthFailure",
    "LumentreeAPIError",
    "UpstreamConnectError",
    "UpstreamTimeoutError",
]
