"""High-level client: the operations the UI layer calls."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

from fdms._constants import INHERITABLE_ELEMENT_FIELDS
from fdms.config import FdmsConfig
from fdms.exceptions import FdmsValidationError
from fdms.formation import (
    duplicate_formation,
    produce_arrival_formation,
    propagate_master_fields,
    set_element_aerodrome,
    update_element,
)
from fdms.lifecycle import status_patch
from fdms.models._base import BookingStatus, FlightType, MovementStatus, PlannedTimeKind
from fdms.models.booking import Booking
from fdms.models.formation import Formation
from fdms.models.movement import Movement
from fdms.models.reconcile import ReconcileSummary
from fdms.persistence.backend import JsonFileStorage, MemoryStorage, StorageBackend
from fdms.state.bookings import BookingStore
from fdms.state.events import ChangeSource, EntityKind, Subscriber
from fdms.state.movements import MovementStore
from fdms.state.patch import to_wire_patch
from fdms.sync import SyncEngine

_logger = logging.getLogger(__name__)

# Fields a copied strip never takes from its source.
_NON_COPYABLE = frozenset(
    {"id", "status", "bookingId", "changeLog", "createdAt", "updatedAt", "depActual", "arrActual", "formation"}
)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def movement_from_booking(booking: Booking, config: FdmsConfig) -> dict[str, Any]:
    """Planned strip for a freshly created booking, linked back to it."""
    kind = booking.schedule.planned_time_kind or PlannedTimeKind.ARR
    planned = booking.schedule.planned_time_local_hhmm
    outstation = booking.movement.departure.upper()

    partial: dict[str, Any] = {
        "status": MovementStatus.PLANNED,
        "flightType": FlightType(kind.value),
        "callsignCode": booking.aircraft.callsign or booking.aircraft.registration,
        "callsignLabel": booking.aircraft.callsign or booking.aircraft.registration,
        "registration": booking.aircraft.registration,
        "type": booking.aircraft.type,
        "dof": booking.schedule.date_iso,
        "pob": booking.aircraft.pob,
        "captain": booking.contact.name,
        "remarks": booking.ops.notes or f"Booking #{booking.id}",
        "bookingId": booking.id,
    }
    if kind == PlannedTimeKind.ARR:
        partial.update(
            depAd=outstation,
            depName=booking.movement.departure_name,
            arrAd=config.home_aerodrome,
            arrName=config.home_aerodrome_name,
            arrPlanned=planned,
        )
    elif kind == PlannedTimeKind.LOC:
        partial.update(
            depAd=config.home_aerodrome,
            depName=config.home_aerodrome_name,
            arrAd=config.home_aerodrome,
            arrName=config.home_aerodrome_name,
            depPlanned=planned,
            arrPlanned=planned,
        )
    else:
        partial.update(
            depAd=config.home_aerodrome,
            depName=config.home_aerodrome_name,
            depPlanned=planned,
        )
    return partial


class FdmsClient:
    """Movement and booking operations with linkage kept in sync.

    Usage::

        with FdmsClient(FdmsConfig.from_env()) as client:
            client.subscribe(redraw)
            strip = client.create_movement({...})

    Entering the context (or calling :meth:`init`) loads both collections
    and reconciles their links before anything is rendered.
    """

    def __init__(
        self,
        config: FdmsConfig | None = None,
        *,
        backend: StorageBackend | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._config = config or FdmsConfig()
        if backend is None:
            if self._config.storage_dir is not None:
                backend = JsonFileStorage(self._config.storage_dir)
            else:
                backend = MemoryStorage()
        self._backend = backend
        self._clock = clock
        self._movements = MovementStore(
            backend, key=self._config.movements_key, clock=clock, actor=self._config.actor
        )
        self._bookings = BookingStore(backend, key=self._config.bookings_key, clock=clock, actor=self._config.actor)
        self._sync = SyncEngine(self._movements, self._bookings, clock=clock)
        self._initialised = False
        self.startup_summary: ReconcileSummary | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def __enter__(self) -> FdmsClient:
        self.init()
        return self

    def __exit__(self, *exc: Any) -> None:
        self.flush()

    def init(self) -> ReconcileSummary | None:
        """Load both stores and reconcile links. Idempotent."""
        if self._initialised:
            return self.startup_summary
        self._movements.init()
        self._bookings.init()
        _logger.debug("Loaded %d movements and %d bookings", len(self._movements), len(self._bookings))
        if self._config.reconcile_on_init:
            self.startup_summary = self._sync.reconcile_links()
        self._initialised = True
        return self.startup_summary

    def flush(self) -> bool:
        """Write both collections through; False if either write failed."""
        movements_ok = self._movements.flush_to_persistence()
        bookings_ok = self._bookings.flush_to_persistence()
        return movements_ok and bookings_ok

    @property
    def config(self) -> FdmsConfig:
        return self._config

    @property
    def movements(self) -> MovementStore:
        return self._movements

    @property
    def bookings(self) -> BookingStore:
        return self._bookings

    @property
    def sync(self) -> SyncEngine:
        return self._sync

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        return self._sync.subscribe(callback)

    def reconcile_links(self) -> ReconcileSummary:
        self.init()
        return self._sync.reconcile_links()

    # ------------------------------------------------------------------
    # Movements
    # ------------------------------------------------------------------

    def _require_movement(self, movement_id: int) -> Movement:
        movement = self._movements.get(movement_id)
        if movement is None:
            raise FdmsValidationError(f"no movement with id {movement_id}", field="id", value=movement_id)
        return movement

    def get_movement(self, movement_id: int) -> Movement | None:
        self.init()
        return self._movements.get(movement_id)

    def list_movements(self) -> list[Movement]:
        self.init()
        return self._movements.list()

    def create_movement(self, partial: Mapping[str, Any], *, actor: str | None = None) -> Movement:
        self.init()
        movement = self._movements.create(partial, actor=actor)
        self._sync.notify(ChangeSource.MOVEMENT_STORE, EntityKind.MOVEMENT, movement.id)
        return movement

    def update_movement(
        self,
        movement_id: int,
        patch: Mapping[str, Any],
        *,
        actor: str | None = None,
    ) -> Movement | None:
        """Edit a strip and carry the edit to its formation and booking.

        A status change goes through the master state machine (and its
        formation cascade). Edits to the master's inheritable times flow
        into elements that have not overridden them.
        """
        self.init()
        current = self._movements.get(movement_id)
        if current is None:
            return None

        wire = to_wire_patch(Movement, patch)
        new_status = wire.get("status")
        status_changed = new_status is not None and new_status != current.status
        if status_changed:
            wire.update(status_patch(current, new_status))

        # The formation about to be written: the cascaded one after a status
        # change, otherwise the stored one. A caller-supplied raw formation
        # is written as given.
        formation = wire.get("formation", current.formation)
        if isinstance(formation, Formation):
            inherited = {k: v for k, v in wire.items() if k in INHERITABLE_ELEMENT_FIELDS}
            if inherited:
                wire["formation"] = propagate_master_fields(formation, inherited)

        result = self._movements.update_with_result(movement_id, wire, actor=actor)
        if result is None:
            return None
        if not result.changed:
            return result.record

        movement = result.record
        self._sync.notify(ChangeSource.MOVEMENT_STORE, EntityKind.MOVEMENT, movement.id)
        if status_changed:
            self._sync.on_movement_status_changed(movement, movement.status)
        self._sync.on_movement_updated(movement)
        return movement

    def set_movement_status(
        self,
        movement_id: int,
        status: MovementStatus | str,
        *,
        actor: str | None = None,
    ) -> Movement | None:
        return self.update_movement(movement_id, {"status": status}, actor=actor)

    def delete_movement(self, movement_id: int) -> bool:
        """Hard delete; the linked booking stops pointing at the strip."""
        self.init()
        movement = self._movements.get(movement_id)
        if movement is None or not self._movements.delete(movement_id):
            return False
        self._sync.notify(ChangeSource.MOVEMENT_STORE, EntityKind.MOVEMENT, movement_id)
        self._sync.on_movement_deleted(movement)
        return True

    def _write_formation(self, movement: Movement, formation: Any, actor: str | None) -> Movement:
        result = self._movements.update_with_result(movement.id, {"formation": formation}, actor=actor)
        if result is None:
            return movement
        if result.changed:
            self._sync.notify(ChangeSource.MOVEMENT_STORE, EntityKind.MOVEMENT, movement.id)
        return result.record

    def update_formation_element(
        self,
        movement_id: int,
        index: int,
        patch: Mapping[str, Any],
        *,
        actor: str | None = None,
    ) -> Movement:
        """Edit one formation element; invalid input leaves the strip untouched."""
        self.init()
        movement = self._require_movement(movement_id)
        if movement.formation is None:
            raise FdmsValidationError(f"movement {movement_id} has no formation", field="formation")
        return self._write_formation(movement, update_element(movement.formation, index, patch), actor)

    def set_element_aerodrome(
        self,
        movement_id: int,
        index: int,
        field: str,
        value: str | None,
        *,
        actor: str | None = None,
    ) -> Movement:
        self.init()
        movement = self._require_movement(movement_id)
        if movement.formation is None:
            raise FdmsValidationError(f"movement {movement_id} has no formation", field="formation")
        return self._write_formation(
            movement, set_element_aerodrome(movement.formation, index, field, value), actor
        )

    def _copy_partial(self, source: Movement, overrides: Mapping[str, Any] | None) -> dict[str, Any]:
        partial = {k: v for k, v in source.to_wire().items() if k not in _NON_COPYABLE}
        partial["status"] = MovementStatus.PLANNED
        partial.update(to_wire_patch(Movement, overrides or {}))
        return partial

    def produce_arrival(
        self,
        movement_id: int,
        overrides: Mapping[str, Any] | None = None,
        *,
        actor: str | None = None,
    ) -> Movement:
        """Create the ARR strip for the return of a DEP strip.

        The route is reversed, planned times are left for the caller, and a
        formation carries over with every element back at PLANNED. The new
        strip is not linked to the source strip's booking.
        """
        self.init()
        source = self._require_movement(movement_id)
        if source.flight_type != FlightType.DEP:
            raise FdmsValidationError(
                f"only DEP strips produce an arrival, movement {movement_id} is {source.flight_type.value}",
                field="flightType",
            )
        base = {
            "flightType": FlightType.ARR,
            "depAd": source.arr_ad,
            "depName": source.arr_name,
            "arrAd": source.dep_ad,
            "arrName": source.dep_name,
            "depPlanned": "",
            "arrPlanned": "",
            "tngCount": 0,
            "osCount": 0,
            "fisCount": 0,
        }
        partial = self._copy_partial(source, {**base, **(overrides or {})})
        if source.formation is not None:
            partial["formation"] = produce_arrival_formation(source.formation)
        _logger.debug("Producing arrival strip from movement id=%d", movement_id)
        return self.create_movement(partial, actor=actor)

    def duplicate_movement(
        self,
        movement_id: int,
        overrides: Mapping[str, Any] | None = None,
        *,
        actor: str | None = None,
    ) -> Movement:
        self.init()
        source = self._require_movement(movement_id)
        partial = self._copy_partial(source, overrides)
        if source.formation is not None:
            partial["formation"] = duplicate_formation(source.formation)
        return self.create_movement(partial, actor=actor)

    # ------------------------------------------------------------------
    # Bookings
    # ------------------------------------------------------------------

    def get_booking_by_id(self, booking_id: int) -> Booking | None:
        self.init()
        return self._bookings.get_by_id(booking_id)

    def list_bookings(self) -> list[Booking]:
        self.init()
        return self._bookings.list()

    def create_booking(self, data: Mapping[str, Any], *, actor: str | None = None) -> Booking:
        self.init()
        booking = self._bookings.create(data, actor=actor)
        self._sync.notify(ChangeSource.BOOKING_STORE, EntityKind.BOOKING, booking.id)
        return booking

    def create_booking_with_strip(
        self,
        data: Mapping[str, Any],
        strip_overrides: Mapping[str, Any] | None = None,
        *,
        actor: str | None = None,
    ) -> tuple[Booking, Movement]:
        """Booking workflow: create the booking, its planned strip, and link both ways.

        If the strip is rejected, the booking is removed again so no
        half-created pair is left behind.
        """
        self.init()
        booking = self._bookings.create(data, actor=actor)
        partial = movement_from_booking(booking, self._config)
        partial.update(to_wire_patch(Movement, strip_overrides or {}))
        partial["bookingId"] = booking.id
        try:
            movement = self._movements.create(partial, actor=actor)
        except FdmsValidationError:
            self._bookings.delete(booking.id)
            raise
        linked = self._bookings.update(booking.id, {"linkedStripId": movement.id}, actor=actor)
        self._sync.notify(ChangeSource.BOOKING_STORE, EntityKind.LINKS, booking.id, movement.id)
        return linked or booking, movement

    def update_booking_by_id(
        self,
        booking_id: int,
        patch: Mapping[str, Any],
        *,
        actor: str | None = None,
    ) -> Booking | None:
        self.init()
        result = self._bookings.update_with_result(booking_id, patch, actor=actor)
        if result is None:
            return None
        if result.changed:
            self._sync.notify(ChangeSource.BOOKING_STORE, EntityKind.BOOKING, booking_id)
        return result.record

    def cancel_booking(
        self,
        booking_id: int,
        *,
        cascade_to_strip: bool = False,
        actor: str | None = None,
    ) -> Booking | None:
        """Cancel a booking.

        With ``cascade_to_strip`` live strips claiming the booking are
        cancelled too; otherwise they are unlinked and left as they are.
        """
        self.init()
        booking = self._bookings.get_by_id(booking_id)
        if booking is None:
            return None
        if booking.status != BookingStatus.CANCELLED:
            booking = self.update_booking_by_id(
                booking_id,
                {"status": BookingStatus.CANCELLED, "cancelledAt": self._clock()},
                actor=actor,
            )

        if cascade_to_strip:
            for movement in self._movements.find_by_booking(booking_id):
                if movement.status.is_live:
                    self.set_movement_status(movement.id, MovementStatus.CANCELLED, actor=actor)
        else:
            self._sync.clear_strip_links(booking_id)
            self.update_booking_by_id(booking_id, {"linkedStripId": None}, actor=actor)
        return self._bookings.get_by_id(booking_id)

    def delete_booking_by_id(self, booking_id: int) -> bool:
        """Hard delete; strips that pointed at the booking are unlinked."""
        self.init()
        if not self._bookings.delete(booking_id):
            return False
        self._sync.notify(ChangeSource.BOOKING_STORE, EntityKind.BOOKING, booking_id)
        self._sync.clear_strip_links(booking_id)
        return True
