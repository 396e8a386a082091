"""API routes for device energy data."""

from datetime import date, datetime

import httpx
import structlog
from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import JSONResponse

from lumentree.api.dependencies import get_device_service, get_lumentree_client, limiter
from lumentree.api.schemas import ErrorResponse
from lumentree.core import (
    DeviceDataService,
    InvalidRequestError,
    LumentreeClient,
    LumentreeError,
    NoDataError,
)
from lumentree.models.energy import DeviceData, EnergySummary, TodaySummary

logger = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/device",
    tags=["devices"],
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)


def _require_device_id(device_id: str) -> str:
    device_id = device_id.strip()
    if not device_id:
        logger.warning("device_id_missing")
        raise InvalidRequestError("Device ID is required", code="MISSING_DEVICE_ID")
    return device_id


def parse_date(value: str) -> date:
    """Parse ``YYYY-MM-DD`` (or an ISO datetime, keeping its date part).

    Raises:
        ValueError: If the value is not a date
    """
    value = value.strip()
    try:
        return date.fromisoformat(value)
    except ValueError:
        return datetime.fromisoformat(value).date()


def _date_param(value: str | None, name: str) -> date | None:
    if not value:
        return None
    try:
        return parse_date(value)
    except ValueError as e:
        raise InvalidRequestError(
            f"Ngày không hợp lệ ({name}={value}), định dạng đúng là YYYY-MM-DD.",
            code="INVALID_DATE",
        ) from e


def _passthrough(response: httpx.Response, device_id: str, what: str) -> Response:
    """Relay an upstream body, or its failure status."""
    if not response.is_success:
        logger.warning(
            "lumentree_proxy_upstream_error",
            device_id=device_id,
            feed=what,
            status_code=response.status_code,
        )
        return JSONResponse(
            status_code=response.status_code,
            content={
                "error": f"Failed to fetch {what} data from Lumentree",
                "code": "UPSTREAM_ERROR",
                "deviceId": device_id,
            },
        )
    return Response(content=response.content, media_type="application/json")


@router.get("/{device_id}", response_model=DeviceData)
@limiter.limit("60/minute")
async def get_device(
    request: Request,
    device_id: str,
    date: str | None = Query(default=None, description="YYYY-MM-DD, defaults to today"),
    service: DeviceDataService = Depends(get_device_service),
) -> DeviceData:
    """Device info plus the five daily tables of one day.

    Missing tables come back as zero tables; an unknown device is a 404.
    """
    device_id = _require_device_id(device_id)

    query_date = service.today()
    if date:
        try:
            query_date = parse_date(date)
        except ValueError:
            logger.warning("date_parse_failed", device_id=device_id, date=date)

    logger.info("device_data_requested", device_id=device_id, date=query_date.isoformat())

    try:
        return await service.get_device_data(device_id, query_date)
    except LumentreeError:
        raise
    except Exception as e:
        logger.error("device_data_error", device_id=device_id, error=str(e), exc_info=True)
        raise LumentreeError(
            "Đã xảy ra lỗi khi xử lý yêu cầu. Vui lòng thử lại sau.",
            details={"details": str(e)},
        ) from e


@router.get("/{device_id}/today", response_model=TodaySummary)
@limiter.limit("60/minute")
async def get_today(
    request: Request,
    device_id: str,
    service: DeviceDataService = Depends(get_device_service),
) -> TodaySummary:
    """Today's energy totals in kWh."""
    device_id = _require_device_id(device_id)

    summary = await service.get_today(device_id)
    if summary is None:
        raise NoDataError(f"No data found for device {device_id}", device_id=device_id)
    return summary


@router.get("/{device_id}/summary", response_model=EnergySummary)
@limiter.limit("10/minute")
async def get_summary(
    request: Request,
    device_id: str,
    from_: str | None = Query(default=None, alias="from", description="YYYY-MM-DD"),
    to: str | None = Query(default=None, description="YYYY-MM-DD"),
    service: DeviceDataService = Depends(get_device_service),
) -> EnergySummary:
    """Daily energy and monthly totals over a date range.

    Defaults to the last month. Days that fail upstream are skipped.
    """
    device_id = _require_device_id(device_id)
    from_date = _date_param(from_, "from")
    to_date = _date_param(to, "to")

    summary = await service.get_summary(device_id, from_date, to_date)
    logger.info(
        "summary_built",
        device_id=device_id,
        total_days=summary.total_days,
        months=len(summary.monthly_data),
    )
    return summary


@router.get("/{device_id}/monthly")
@limiter.limit("30/minute")
async def get_monthly(
    request: Request,
    device_id: str,
    client: LumentreeClient = Depends(get_lumentree_client),
) -> Response:
    """Monthly statistics, relayed from lumentree.net."""
    device_id = _require_device_id(device_id)
    logger.info("monthly_data_requested", device_id=device_id)

    response = await client.fetch_monthly(device_id)
    return _passthrough(response, device_id, "monthly")


@router.get("/{device_id}/soc")
@limiter.limit("30/minute")
async def get_soc(
    request: Request,
    device_id: str,
    date: str | None = Query(default=None, description="YYYY-MM-DD, defaults to today"),
    client: LumentreeClient = Depends(get_lumentree_client),
    service: DeviceDataService = Depends(get_device_service),
) -> Response:
    """SOC timeline of one day, relayed from lumentree.net."""
    device_id = _require_device_id(device_id)
    query_date = _date_param(date, "date") or service.today()
    logger.info("soc_data_requested", device_id=device_id, date=query_date.isoformat())

    response = await client.fetch_soc(device_id, query_date)
    return _passthrough(response, device_id, "SOC")
