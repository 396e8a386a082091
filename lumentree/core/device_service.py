"""Device data aggregation: merges the daily tables into dashboard views."""

import asyncio
import calendar
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

import structlog

from lumentree.config import get_settings
from lumentree.core.exceptions import DeviceNotFoundError, InvalidRequestError
from lumentree.core.lumentree_client import LumentreeClient
from lumentree.models.energy import (
    DailyEnergy,
    DeviceData,
    EnergySummary,
    MonthlyEnergy,
    TodaySummary,
)
from lumentree.models.lumentree_api import (
    BatData,
    DeviceDataResult,
    LoadInfo,
    default_bat_data,
    default_load_info,
    default_pv_info,
)

logger = structlog.get_logger(__name__)


def to_kwh(value: int | float | None) -> float:
    """Convert tenths of kWh to kWh."""
    return (value or 0) / 10.0


def _bat_kwh(bat: BatData | None, which: str) -> float:
    if bat is None:
        return 0.0
    entry = bat.charge if which == "charge" else bat.discharge
    return to_kwh(entry.table_value) if entry is not None else 0.0


def _table_kwh(table: LoadInfo | None) -> float:
    return to_kwh(table.table_value) if table is not None else 0.0


class DeviceDataService:
    """Fetches the tables of a device and shapes them for the dashboard.

    Every table fetch is independent: a failing PV, battery or load table
    becomes None (then a zero default at the boundary), while a failing device
    info lookup means the device is treated as not found.
    """

    def __init__(
        self,
        client: LumentreeClient,
        *,
        summary_concurrency: int = 4,
        summary_max_days: int = 366,
        timezone: str = "Asia/Ho_Chi_Minh",
    ) -> None:
        """Initialize device data service.

        Args:
            client: Lumentree API client
            summary_concurrency: Days fetched at once for a summary range
            summary_max_days: Longest accepted summary range in days
            timezone: IANA timezone defining "today"
        """
        self.client = client
        self.summary_concurrency = summary_concurrency
        self.summary_max_days = summary_max_days
        self.timezone = ZoneInfo(timezone)

    @classmethod
    def from_settings(cls, client: LumentreeClient) -> "DeviceDataService":
        """Build the service from application settings."""
        settings = get_settings()
        return cls(
            client,
            summary_concurrency=settings.summary_concurrency,
            summary_max_days=settings.summary_max_days,
            timezone=settings.timezone,
        )

    def today(self) -> date:
        """Current date in the configured timezone."""
        return datetime.now(self.timezone).date()

    async def get_all_device_data(self, device_id: str, day: date) -> DeviceDataResult:
        """Fetch device info and the five daily tables concurrently.

        Args:
            device_id: Device ID
            day: Day to fetch

        Returns:
            Result tuple; failed fetches are None
        """
        info, pv, bat, other = await asyncio.gather(
            self.client.get_device_info(device_id),
            self.client.get_pv_day_data(device_id, day),
            self.client.get_bat_day_data(device_id, day),
            self.client.get_other_day_data(device_id, day),
            return_exceptions=True,
        )

        for name, result in (("device_info", info), ("pv", pv), ("bat", bat), ("other", other)):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                logger.warning(
                    "device_table_fetch_failed",
                    device_id=device_id,
                    date=day.isoformat(),
                    table=name,
                    error=str(result),
                    error_type=type(result).__name__,
                )

        tables = other if isinstance(other, dict) else {}
        return DeviceDataResult(
            device_info=None if isinstance(info, BaseException) else info,
            pv=None if isinstance(pv, BaseException) else pv,
            bat=None if isinstance(bat, BaseException) else bat,
            essential_load=tables.get("essential_load"),
            grid=tables.get("grid"),
            load=tables.get("load"),
        )

    async def get_device_data(self, device_id: str, day: date) -> DeviceData:
        """Fetch device data with zero defaults for missing tables.

        Raises:
            DeviceNotFoundError: If device info could not be retrieved
        """
        result = await self.get_all_device_data(device_id, day)

        if result.device_info is None:
            logger.warning(
                "device_info_missing",
                device_id=device_id,
                hint="invalid device ID, upstream connection issue or expired token",
            )
            raise DeviceNotFoundError(device_id)

        data = DeviceData(
            device_info=result.device_info,
            pv=result.pv or default_pv_info(),
            bat=result.bat or default_bat_data(),
            essential_load=result.essential_load or default_load_info("EssentialLoad"),
            grid=result.grid or default_load_info("Grid"),
            load=result.load or default_load_info("HomeLoad"),
        )
        logger.info("device_data_fetched", device_id=device_id, date=day.isoformat())
        return data

    async def get_today(self, device_id: str, day: date | None = None) -> TodaySummary | None:
        """Energy totals of one day in kWh.

        Returns:
            Summary, or None when the PV table is unavailable
        """
        day = day or self.today()
        result = await self.get_all_device_data(device_id, day)

        if result.pv is None:
            logger.info("today_data_missing", device_id=device_id, date=day.isoformat())
            return None

        return TodaySummary(
            device_id=device_id,
            date=day,
            solar_kwh=to_kwh(result.pv.table_value),
            load_kwh=_table_kwh(result.load),
            grid_kwh=_table_kwh(result.grid),
            bat_charge_kwh=_bat_kwh(result.bat, "charge"),
            bat_discharge_kwh=_bat_kwh(result.bat, "discharge"),
            essential_load_kwh=_table_kwh(result.essential_load),
        )

    async def _fetch_day(
        self, device_id: str, day: date, semaphore: asyncio.Semaphore
    ) -> DailyEnergy | None:
        async with semaphore:
            try:
                result = await self.get_all_device_data(device_id, day)
            except Exception as e:
                logger.warning(
                    "summary_day_skipped",
                    device_id=device_id,
                    date=day.isoformat(),
                    error=str(e),
                )
                return None

        if result.pv is None:
            logger.debug("summary_day_no_data", device_id=device_id, date=day.isoformat())
            return None

        return DailyEnergy(
            date=day,
            load_kwh=_table_kwh(result.load),
            grid_kwh=_table_kwh(result.grid),
            pv_kwh=to_kwh(result.pv.table_value),
        )

    async def get_summary(
        self,
        device_id: str,
        from_date: date | None = None,
        to_date: date | None = None,
    ) -> EnergySummary:
        """Daily energy and monthly rollups over a date range.

        Days whose fetch fails are skipped.

        Args:
            device_id: Device ID
            from_date: First day (default: one month before ``to_date``)
            to_date: Last day, inclusive (default: today)

        Raises:
            InvalidRequestError: If the range is reversed or too long
        """
        to_date = to_date or self.today()
        from_date = from_date or _one_month_before(to_date)

        if from_date > to_date:
            raise InvalidRequestError(
                "Ngày bắt đầu phải trước ngày kết thúc.", code="INVALID_RANGE"
            )
        span = (to_date - from_date).days + 1
        if span > self.summary_max_days:
            raise InvalidRequestError(
                f"Khoảng thời gian tối đa là {self.summary_max_days} ngày.",
                code="INVALID_RANGE",
            )

        logger.info(
            "summary_requested",
            device_id=device_id,
            from_date=from_date.isoformat(),
            to_date=to_date.isoformat(),
            days=span,
        )

        semaphore = asyncio.Semaphore(self.summary_concurrency)
        days = [from_date + timedelta(days=i) for i in range(span)]
        results = await asyncio.gather(
            *(self._fetch_day(device_id, day, semaphore) for day in days)
        )
        daily = [entry for entry in results if entry is not None]

        monthly: dict[str, MonthlyEnergy] = {}
        for entry in daily:
            key = entry.date.strftime("%Y-%m")
            month = monthly.setdefault(key, MonthlyEnergy(month=key))
            month.load += entry.load_kwh
            month.grid += entry.grid_kwh
            month.pv += entry.pv_kwh
            month.days += 1

        monthly_data = [
            MonthlyEnergy(
                month=m.month,
                load=round(m.load, 1),
                grid=round(m.grid, 1),
                pv=round(m.pv, 1),
                days=m.days,
            )
            for m in sorted(monthly.values(), key=lambda m: m.month)
        ]

        return EnergySummary(
            device_id=device_id,
            from_date=from_date,
            to_date=to_date,
            total_days=len(daily),
            monthly_data=monthly_data,
            daily_data=daily,
        )


def _one_month_before(day: date) -> date:
    """Same day one month earlier, clamped to the end of shorter months."""
    year, month = (day.year, day.month - 1) if day.month > 1 else (day.year - 1, 12)
    return date(year, month, min(day.day, calendar.monthrange(year, month)[1]))
