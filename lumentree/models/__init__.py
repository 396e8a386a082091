"""Data models."""

from lumentree.models.energy import (
    DailyEnergy,
    DeviceData,
    EnergySummary,
    MonthlyEnergy,
    TodaySummary,
)
from lumentree.models.lumentree_api import (
    BatData,
    BatInfo,
    DeviceDataResult,
    DeviceInfo,
    LoadInfo,
    LumentreeModel,
    PVInfo,
)

__all__ = [
    "LumentreeModel",
    "DeviceInfo",
    "PVInfo",
    "LoadInfo",
    "BatInfo",
    "BatData",
    "DeviceDataResult",
    "DeviceData",
    "TodaySummary",
    "DailyEnergy",
    "MonthlyEnergy",
    "EnergySummary",
]
