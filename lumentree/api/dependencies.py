"""FastAPI dependencies."""

from functools import lru_cache

from slowapi import Limiter
from slowapi.util import get_remote_address

from lumentree.config import get_settings
from lumentree.core import DeviceDataService, LumentreeClient, RealtimePoller, SubscriptionHub

limiter = Limiter(
    key_func=get_remote_address,
    enabled=get_settings().rate_limit_enabled,
)


@lru_cache
def get_lumentree_client() -> LumentreeClient:
    """Get singleton LumentreeClient instance.

    Returns:
        LumentreeClient instance (singleton)
    """
    return LumentreeClient.from_settings()


@lru_cache
def get_device_service() -> DeviceDataService:
    """Get singleton DeviceDataService instance."""
    return DeviceDataService.from_settings(get_lumentree_client())


@lru_cache
def get_hub() -> SubscriptionHub:
    """Get singleton SubscriptionHub instance."""
    return SubscriptionHub(send_timeout=get_settings().realtime.send_timeout)


@lru_cache
def get_realtime_poller() -> RealtimePoller:
    """Get singleton RealtimePoller instance."""
    return RealtimePoller(get_lumentree_client(), get_hub(), get_device_service())
