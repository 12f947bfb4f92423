"""Data models for fdms records."""

from fdms.models._base import (
    BookingStatus,
    FdmsBaseModel,
    FlightType,
    MovementStatus,
    PlannedTimeKind,
    Wtc,
    max_wtc,
)
from fdms.models.booking import (
    Booking,
    BookingAircraft,
    BookingCharges,
    BookingContact,
    BookingMovement,
    BookingOps,
    BookingSchedule,
)
from fdms.models.formation import Formation, FormationElement
from fdms.models.movement import ChangeLogEntry, FieldChange, Movement
from fdms.models.reconcile import LinkConflict, ReconcileSummary

__all__ = [
    "Booking",
    "BookingAircraft",
    "BookingCharges",
    "BookingContact",
    "BookingMovement",
    "BookingOps",
    "BookingSchedule",
    "BookingStatus",
    "ChangeLogEntry",
    "FdmsBaseModel",
    "FieldChange",
    "FlightType",
    "Formation",
    "FormationElement",
    "LinkConflict",
    "Movement",
    "MovementStatus",
    "PlannedTimeKind",
    "ReconcileSummary",
    "Wtc",
    "max_wtc",
]
