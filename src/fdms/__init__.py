"""fdms - Flight data movement and booking stores with referential integrity."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("fdms")
except PackageNotFoundError:
    __version__ = "0+local"
from fdms.client import FdmsClient, movement_from_booking
from fdms.config import FdmsConfig
from fdms.exceptions import (
    FdmsConfigError,
    FdmsError,
    FdmsPersistenceError,
    FdmsStorageQuotaError,
    FdmsTransitionError,
    FdmsValidationError,
)
from fdms.models import (
    Booking,
    BookingStatus,
    FlightType,
    Formation,
    FormationElement,
    LinkConflict,
    Movement,
    MovementStatus,
    PlannedTimeKind,
    ReconcileSummary,
    Wtc,
)
from fdms.persistence import JsonFileStorage, MemoryStorage, StorageBackend
from fdms.state.events import ChangeSource, DataChangedEvent, EntityKind
from fdms.sync import SyncEngine

__all__ = [
    "__version__",
    "Booking",
    "BookingStatus",
    "ChangeSource",
    "DataChangedEvent",
    "EntityKind",
    "FdmsClient",
    "FdmsConfig",
    "FdmsConfigError",
    "FdmsError",
    "FdmsPersistenceError",
    "FdmsStorageQuotaError",
    "FdmsTransitionError",
    "FdmsValidationError",
    "FlightType",
    "Formation",
    "FormationElement",
    "JsonFileStorage",
    "LinkConflict",
    "MemoryStorage",
    "Movement",
    "MovementStatus",
    "PlannedTimeKind",
    "ReconcileSummary",
    "StorageBackend",
    "SyncEngine",
    "Wtc",
    "movement_from_booking",
]
