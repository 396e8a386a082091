"""Upstream connectivity diagnostics."""

import asyncio
import socket
from urllib.parse import urlparse

import structlog
from fastapi import APIRouter, Depends

from lumentree.api.dependencies import get_lumentree_client
from lumentree.api.schemas import ConnectivityResponse, ProbeResult
from lumentree.config import get_settings
from lumentree.core import LumentreeClient

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/debug", tags=["debug"])


async def _probe_dns(host: str) -> ProbeResult:
    loop = asyncio.get_running_loop()
    try:
        infos = await loop.getaddrinfo(host, None, type=socket.SOCK_STREAM)
    except OSError as e:
        return ProbeResult(success=False, error=str(e))
    addresses = sorted({info[4][0] for info in infos})
    return ProbeResult(success=True, host=host, addresses=addresses)


async def _probe_server_time(client: LumentreeClient) -> ProbeResult:
    try:
        server_time = await client.get_server_time()
    except Exception as e:
        return ProbeResult(success=False, error=str(e))
    return ProbeResult(success=True, server_time=server_time)


async def _probe_token(client: LumentreeClient, device_id: str) -> ProbeResult:
    try:
        token = await client.generate_token(device_id)
    except Exception as e:
        return ProbeResult(success=False, error=str(e))
    return ProbeResult(success=bool(token), token_preview=f"{token[:8]}...")


@router.get("/connectivity", response_model=ConnectivityResponse)
async def connectivity(
    client: LumentreeClient = Depends(get_lumentree_client),
) -> ConnectivityResponse:
    """Check DNS, the vendor API and token generation, each independently."""
    settings = get_settings()
    host = urlparse(client.base_url).hostname or client.base_url

    dns, server_time, token = await asyncio.gather(
        _probe_dns(host),
        _probe_server_time(client),
        _probe_token(client, settings.debug_probe_device_id),
    )

    logger.info(
        "connectivity_checked",
        dns=dns.success,
        lumentree_api=server_time.success,
        token_generation=token.success,
    )
    return ConnectivityResponse(
        dns_resolution=dns,
        lumentree_api=server_time,
        token_generation=token,
    )
