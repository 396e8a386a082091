"""Energy views computed from the daily tables."""

import datetime

from pydantic import Field

from lumentree.models.lumentree_api import (
    BatData,
    DeviceInfo,
    LoadInfo,
    LumentreeModel,
    PVInfo,
)


class DeviceData(LumentreeModel):
    """Aggregated device data with every table present."""

    device_info: DeviceInfo
    pv: PVInfo
    bat: BatData
    essential_load: LoadInfo
    grid: LoadInfo
    load: LoadInfo


class TodaySummary(LumentreeModel):
    """Single-day energy totals in kWh."""

    device_id: str
    date: datetime.date
    solar_kwh: float
    load_kwh: float
    grid_kwh: float
    bat_charge_kwh: float
    bat_discharge_kwh: float
    essential_load_kwh: float


class DailyEnergy(LumentreeModel):
    """One day of a summary range [kWh]."""

    date: datetime.date
    load_kwh: float
    grid_kwh: float
    pv_kwh: float


class MonthlyEnergy(LumentreeModel):
    """Per-month rollup of a summary range [kWh]."""

    month: str = Field(description="yyyy-MM")
    load: float = 0.0
    grid: float = 0.0
    pv: float = 0.0
    days: int = 0


class EnergySummary(LumentreeModel):
    """Daily entries and monthly rollups for a date range."""

    device_id: str
    from_date: datetime.date
    to_date: datetime.date
    total_days: int
    monthly_data: list[MonthlyEnergy] = Field(default_factory=list)
    daily_data: list[DailyEnergy] = Field(default_factory=list)
