"""Booking records and their nested field groups."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from pydantic import Field, model_validator

from fdms.models._base import (
    BookingStatus,
    ClockTime,
    FdmsBaseModel,
    IsoDate,
    OptionalRef,
    PlannedTimeKind,
)
from fdms.models.movement import ChangeLogEntry


class BookingContact(FdmsBaseModel):
    name: str = ""
    phone: str = ""
    email: str = ""


class BookingSchedule(FdmsBaseModel):
    """When the visit happens.

    ``planned_time_local_hhmm`` + ``planned_time_kind`` are canonical.
    ``arrival_time_local_hhmm`` is the legacy alias older records carry; it
    is kept in step for ARR/LOC bookings and never invented for DEP ones.
    """

    date_iso: IsoDate = Field(default="", alias="dateISO")
    planned_time_local_hhmm: ClockTime = Field(default="", alias="plannedTimeLocalHHMM")
    planned_time_kind: PlannedTimeKind | None = None
    arrival_time_local_hhmm: ClockTime = Field(default="", alias="arrivalTimeLocalHHMM")

    @model_validator(mode="after")
    def _normalize_planned_time(self) -> BookingSchedule:
        if self.arrival_time_local_hhmm and not self.planned_time_local_hhmm:
            object.__setattr__(self, "planned_time_local_hhmm", self.arrival_time_local_hhmm)
            if self.planned_time_kind is None:
                object.__setattr__(self, "planned_time_kind", PlannedTimeKind.ARR)

        if (
            self.planned_time_local_hhmm
            and self.planned_time_kind in (PlannedTimeKind.ARR, PlannedTimeKind.LOC)
            and not self.arrival_time_local_hhmm
        ):
            object.__setattr__(self, "arrival_time_local_hhmm", self.planned_time_local_hhmm)
        return self


class BookingAircraft(FdmsBaseModel):
    registration: str = ""
    type: str = ""
    callsign: str = ""
    pob: int | None = Field(default=None, ge=0)


class BookingMovement(FdmsBaseModel):
    departure: str = ""
    departure_name: str = ""


class BookingOps(FdmsBaseModel):
    notes: str = ""
    notes_from_strip: str = ""


class BookingCharges(FdmsBaseModel):
    """Charges are computed elsewhere; the store only carries them."""


class Booking(FdmsBaseModel):
    """A pre-arranged visit that may spin up and stay in sync with a strip."""

    id: int = Field(..., ge=1)
    status: BookingStatus = BookingStatus.CONFIRMED
    linked_strip_id: OptionalRef = None

    contact: BookingContact = Field(default_factory=BookingContact)
    schedule: BookingSchedule = Field(default_factory=BookingSchedule)
    aircraft: BookingAircraft = Field(default_factory=BookingAircraft)
    movement: BookingMovement = Field(default_factory=BookingMovement)
    ops: BookingOps = Field(default_factory=BookingOps)
    charges: BookingCharges = Field(default_factory=BookingCharges)

    created_at_utc: datetime | None = None
    updated_at_utc: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    change_log: tuple[ChangeLogEntry, ...] = ()

    @model_validator(mode="before")
    @classmethod
    def _null_groups_to_empty(cls, values: Any) -> Any:
        """Legacy records sometimes persisted a group as ``null``."""
        if not isinstance(values, Mapping):
            return values
        cleaned = dict(values)
        for group in ("contact", "schedule", "aircraft", "movement", "ops", "charges"):
            if group in cleaned and cleaned[group] is None:
                del cleaned[group]
        return cleaned
