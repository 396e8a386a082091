"""Per-device token cache with expiry and single-flight renewal."""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import structlog

from lumentree.core.exceptions import (
    AuthFailure,
    UpstreamConnectError,
    UpstreamTimeoutError,
)

logger = structlog.get_logger(__name__)

Authenticator = Callable[[str], Awaitable[str]]


@dataclass(frozen=True)
class CachedToken:
    """A token and the monotonic time it stops being valid."""

    value: str
    expires_at: float

    def is_valid(self, now: float) -> bool:
        return now < self.expires_at


class TokenCache:
    """Caches one upstream token per device.

    Concurrent ``get_token`` calls for the same device share one in-flight
    authentication task, whether it succeeds or fails. Callers for other
    devices never wait on it. A token is stored only after authentication
    succeeds, in a single assignment; expired tokens are evicted when seen.
    """

    def __init__(
        self,
        authenticate: Authenticator,
        ttl: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize token cache.

        Args:
            authenticate: Coroutine function returning a fresh token for a device
            ttl: Token lifetime in seconds
            clock: Monotonic clock (injectable for tests)
        """
        self._authenticate = authenticate
        self.ttl = ttl
        self._clock = clock
        self._tokens: dict[str, CachedToken] = {}
        self._inflight: dict[str, asyncio.Task[str]] = {}

    def peek(self, device_id: str) -> str | None:
        """Return the cached token if still valid, without authenticating."""
        cached = self._tokens.get(device_id)
        if cached is None:
            return None
        if not cached.is_valid(self._clock()):
            del self._tokens[device_id]
            return None
        return cached.value

    async def get_token(self, device_id: str) -> str:
        """Return a valid token for the device, authenticating if needed.

        Cancelling one caller does not cancel the shared authentication.

        Args:
            device_id: Device ID

        Returns:
            Token string

        Raises:
            AuthFailure: If authentication fails
        """
        token = self.peek(device_id)
        if token is not None:
            return token

        task = self._inflight.get(device_id)
        if task is None:
            task = asyncio.create_task(self._renew(device_id))
            task.add_done_callback(_retrieve_exception)
            self._inflight[device_id] = task
        else:
            logger.debug("token_renewal_joined", device_id=device_id)

        return await asyncio.shield(task)

    async def _renew(self, device_id: str) -> str:
        logger.info("token_renewing", device_id=device_id)
        try:
            try:
                token = await self._authenticate(device_id)
            except (AuthFailure, UpstreamConnectError, UpstreamTimeoutError):
                raise
            except Exception as e:
                logger.warning("token_renewal_failed", device_id=device_id, error=str(e))
                raise AuthFailure(
                    f"Không thể xác thực với server Lumentree: {e}",
                    device_id=device_id,
                ) from e

            if not token:
                raise AuthFailure(
                    "Server Lumentree trả về token rỗng.", device_id=device_id
                )

            self._tokens[device_id] = CachedToken(token, self._clock() + self.ttl)
            logger.info("token_cached", device_id=device_id, ttl=self.ttl)
            return token
        finally:
            if self._inflight.get(device_id) is asyncio.current_task():
                del self._inflight[device_id]

    def invalidate(self, device_id: str, token: str | None = None) -> None:
        """Drop the cached token for a device.

        Args:
            device_id: Device ID
            token: Only drop if the cached token is this one, so a token
                renewed meanwhile by another caller survives
        """
        cached = self._tokens.get(device_id)
        if cached is None:
            return
        if token is not None and cached.value != token:
            return
        del self._tokens[device_id]
        logger.info("token_invalidated", device_id=device_id)

    def clear(self) -> None:
        """Drop every cached token and cancel pending renewals."""
        for task in self._inflight.values():
            task.cancel()
        self._inflight.clear()
        self._tokens.clear()

    @property
    def pending(self) -> int:
        """Number of authentications in flight."""
        return len(self._inflight)

    def __len__(self) -> int:
        return len(self._tokens)


def _retrieve_exception(task: asyncio.Task[str]) -> None:
    # Failures with no caller left waiting must not be reported as unretrieved
    if not task.cancelled():
        task.exception()
