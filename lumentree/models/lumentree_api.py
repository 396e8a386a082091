"""Pydantic models for Lumentree API responses."""

from typing import Any, NamedTuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class LumentreeModel(BaseModel):
    """Base model speaking the upstream camelCase field names."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_json_dict(self) -> dict[str, Any]:
        """Dump using the camelCase wire names."""
        return self.model_dump(by_alias=True, mode="json")


class DeviceInfo(LumentreeModel):
    """Device metadata from deviceManage.

    Only the fields the dashboard reads are typed; everything else the
    upstream sends is kept untouched.
    """

    model_config = ConfigDict(extra="allow")

    device_id: str = Field(description="Vendor device ID (e.g. 'P250812032')")
    device_type: str | None = Field(default=None, description="Inverter model")
    remark_name: str | None = Field(default=None, description="User-given name")
    online_status: int | None = Field(default=None, description="1 when online")


class PVInfo(LumentreeModel):
    """Daily PV table."""

    table_key: str = "pv"
    table_name: str = "PV"
    table_value: int = Field(default=0, description="Daily total [0.1 kWh]")
    table_value_info: list[int] = Field(
        default_factory=list, description="Per-5-minute samples"
    )


class LoadInfo(LumentreeModel):
    """Daily load-like table (essential load, grid, home load)."""

    table_key: str
    table_name: str
    table_value: int = Field(default=0, description="Daily total [0.1 kWh]")
    table_value_info: list[int] = Field(
        default_factory=list, description="Per-5-minute samples"
    )


class BatInfo(LumentreeModel):
    """One battery sub-entry (charge or discharge)."""

    table_key: str
    table_name: str
    table_value: int = Field(default=0, description="Daily total [0.1 kWh]")


class BatData(LumentreeModel):
    """Daily battery table: charge and discharge totals plus a shared series."""

    bats: list[BatInfo] = Field(default_factory=list)
    table_value_info: list[int] = Field(default_factory=list)

    def _entry(self, key: str, index: int) -> BatInfo | None:
        for bat in self.bats:
            if bat.table_key.lower() == key:
                return bat
        if len(self.bats) > index:
            return self.bats[index]
        return None

    @property
    def charge(self) -> BatInfo | None:
        """Charge entry, by key or by position."""
        return self._entry("charge", 0)

    @property
    def discharge(self) -> BatInfo | None:
        """Discharge entry, by key or by position."""
        return self._entry("discharge", 1)


class DeviceDataResult(NamedTuple):
    """Everything fetched for one device and day.

    Any table may be None when its fetch failed; device_info is None when the
    device could not be resolved.
    """

    device_info: DeviceInfo | None
    pv: PVInfo | None
    bat: BatData | None
    essential_load: LoadInfo | None
    grid: LoadInfo | None
    load: LoadInfo | None


def default_pv_info() -> PVInfo:
    """Zero PV table."""
    return PVInfo(table_key="pv", table_name="PV", table_value=0, table_value_info=[])


def default_bat_data() -> BatData:
    """Zero battery table with charge and discharge entries."""
    return BatData(
        bats=[
            BatInfo(table_key="charge", table_name="Charge", table_value=0),
            BatInfo(table_key="discharge", table_name="Discharge", table_value=0),
        ],
        table_value_info=[],
    )


def default_load_info(name: str) -> LoadInfo:
    """Zero load-like table named after ``name``."""
    return LoadInfo(
        table_key=name.lower(), table_name=name, table_value=0, table_value_info=[]
    )
