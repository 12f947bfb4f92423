"""Movement (flight strip) records."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from pydantic import ConfigDict, Field, field_validator, model_validator

from fdms._constants import FORMATION_MIN_ELEMENTS
from fdms.models._base import (
    ClockTime,
    FdmsBaseModel,
    FlightType,
    IsoDate,
    MovementStatus,
    OptionalRef,
)
from fdms.models.formation import Formation


class FieldChange(FdmsBaseModel):
    """Before/after values of one field in a change-log entry."""

    old: Any = Field(default=None, alias="from")
    new: Any = Field(default=None, alias="to")


class ChangeLogEntry(FdmsBaseModel):
    """One append-only audit entry on a record."""

    model_config = ConfigDict(extra="ignore")

    timestamp: datetime
    actor: str
    action: str
    changes: dict[str, FieldChange] = Field(default_factory=dict)


class Movement(FdmsBaseModel):
    """A single flight's administrative record (a "strip")."""

    id: int = Field(..., ge=1)
    status: MovementStatus = MovementStatus.PLANNED
    flight_type: FlightType

    callsign_code: str
    callsign_label: str = ""
    registration: str = ""
    type: str = ""
    wtc: str = ""

    dep_ad: str = ""
    dep_name: str = ""
    arr_ad: str = ""
    arr_name: str = ""

    dof: IsoDate = ""
    dep_planned: ClockTime = ""
    dep_actual: ClockTime = ""
    arr_planned: ClockTime = ""
    arr_actual: ClockTime = ""

    tng_count: int = Field(default=0, ge=0)
    os_count: int = Field(default=0, ge=0)
    fis_count: int = Field(default=0, ge=0)
    pob: int | None = Field(default=None, ge=0)
    remarks: str = ""

    booking_id: OptionalRef = None
    formation: Formation | None = None

    created_at: datetime | None = None
    updated_at: datetime | None = None
    change_log: tuple[ChangeLogEntry, ...] = ()

    @field_validator("callsign_code")
    @classmethod
    def _require_callsign(cls, value: str) -> str:
        if not value:
            raise ValueError("callsign must be non-empty")
        return value.upper()

    @field_validator("dep_ad", "arr_ad")
    @classmethod
    def _upper_aerodrome(cls, value: str) -> str:
        return value.upper()

    @field_validator("formation", mode="before")
    @classmethod
    def _drop_undersized_formation(cls, value: Any) -> Any:
        """A formation with fewer than two elements is no formation at all."""
        if value is None:
            return None
        if isinstance(value, Formation):
            return value
        if not isinstance(value, Mapping):
            return None
        elements = value.get("elements")
        if not isinstance(elements, (list, tuple)) or len(elements) < FORMATION_MIN_ELEMENTS:
            return None
        return value

    @model_validator(mode="after")
    def _default_formation_label(self) -> Movement:
        if self.formation is not None and not self.formation.label:
            label = f"{self.callsign_code} flight of {len(self.formation.elements)}"
            object.__setattr__(self, "formation", self.formation.model_copy(update={"label": label}))
        return self
