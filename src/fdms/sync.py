"""Movement/booking synchronization and link reconciliation.

The engine keeps a linked strip and booking consistent and keeps the two
weak references (``movement.bookingId`` and ``booking.linkedStripId``)
honest. It never touches either collection directly: every write goes
through the owning store, so diffing and validation stay in one place per
record type.

Propagation is strictly one hop. While a booking patch is being applied
(and its notification delivered), any further patch is dropped rather
than queued, so a subscriber that reacts to the notification by editing
the strip again cannot start a feedback loop.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

from fdms.models._base import BookingStatus, FlightType, MovementStatus, PlannedTimeKind
from fdms.models.movement import Movement
from fdms.models.reconcile import LinkConflict, ReconcileSummary
from fdms.state.bookings import BookingStore
from fdms.state.events import ChangeNotifier, ChangeSource, DataChangedEvent, EntityKind, Subscriber
from fdms.state.movements import MovementStore

_logger = logging.getLogger(__name__)

_RECONCILE_ACTOR = "reconcile"
_SYNC_ACTOR = "bookingSync"

_TERMINAL_BOOKING_STATUS: dict[MovementStatus, tuple[BookingStatus, str]] = {
    MovementStatus.COMPLETED: (BookingStatus.COMPLETED, "completedAt"),
    MovementStatus.CANCELLED: (BookingStatus.CANCELLED, "cancelledAt"),
}


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _without_none(values: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


def booking_patch_from_movement(movement: Movement) -> dict[str, Any]:
    """Fields a linked booking mirrors from its strip."""
    schedule: dict[str, Any] = {"dateISO": movement.dof}

    planned: str = ""
    kind: PlannedTimeKind | None = None
    if movement.flight_type == FlightType.ARR:
        planned, kind = movement.arr_planned, PlannedTimeKind.ARR
    elif movement.flight_type == FlightType.LOC:
        planned, kind = movement.arr_planned, PlannedTimeKind.LOC
    elif movement.flight_type == FlightType.DEP:
        planned, kind = movement.dep_planned, PlannedTimeKind.DEP

    if planned and kind is not None:
        schedule["plannedTimeLocalHHMM"] = planned
        schedule["plannedTimeKind"] = kind.value
        # Legacy alias only ever carries arrival-kind times; a DEP booking
        # drops whatever arrival time it carried before.
        if kind in (PlannedTimeKind.ARR, PlannedTimeKind.LOC):
            schedule["arrivalTimeLocalHHMM"] = planned
        else:
            schedule["arrivalTimeLocalHHMM"] = ""

    return {
        "schedule": schedule,
        "aircraft": _without_none(
            {
                "registration": movement.registration,
                "type": movement.type,
                "callsign": movement.callsign_code,
                "pob": movement.pob,
            }
        ),
        "movement": {"departure": movement.dep_ad, "departureName": movement.dep_name},
        "ops": {"notesFromStrip": movement.remarks},
    }


class SyncEngine:
    """Propagates strip edits to linked bookings and repairs dangling links.

    Both stores are passed in by reference; the engine owns the
    notification channel presentation code subscribes to.
    """

    def __init__(
        self,
        movements: MovementStore,
        bookings: BookingStore,
        *,
        notifier: ChangeNotifier | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._movements = movements
        self._bookings = bookings
        self._notifier = notifier or ChangeNotifier()
        self._clock = clock
        self._patch_in_progress = False
        self.dropped_patches = 0

    @property
    def notifier(self) -> ChangeNotifier:
        return self._notifier

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        return self._notifier.subscribe(callback)

    def notify(self, source: ChangeSource, entity: EntityKind, *record_ids: int) -> None:
        self._notifier.emit(
            DataChangedEvent(source=source, entity=entity, record_ids=record_ids, observed_at=self._clock())
        )

    # ------------------------------------------------------------------
    # Strip -> booking propagation
    # ------------------------------------------------------------------

    def _dispatch_booking_patch(self, booking_id: int, patch: Mapping[str, Any]) -> bool:
        if self._patch_in_progress:
            self.dropped_patches += 1
            _logger.debug("Dropped re-entrant patch for booking id=%s", booking_id)
            return False

        self._patch_in_progress = True
        try:
            result = self._bookings.update_with_result(booking_id, patch, actor=_SYNC_ACTOR)
            if result is None:
                _logger.debug("Linked booking id=%s not found; leaving it to reconciliation", booking_id)
                return False
            if not result.changed:
                return False
            self.notify(ChangeSource.BOOKING_SYNC, EntityKind.BOOKING, booking_id)
            return True
        finally:
            self._patch_in_progress = False

    def on_movement_updated(self, movement: Movement) -> bool:
        """Mirror a saved strip into its booking. Returns True if the booking changed."""
        if movement.booking_id is None:
            return False
        return self._dispatch_booking_patch(movement.booking_id, booking_patch_from_movement(movement))

    def on_movement_status_changed(self, movement: Movement, new_status: MovementStatus | str) -> bool:
        """Close the linked booking when its strip completes or is cancelled."""
        if movement.booking_id is None:
            return False
        terminal = _TERMINAL_BOOKING_STATUS.get(MovementStatus(new_status))
        if terminal is None:
            return False
        booking = self._bookings.get_by_id(movement.booking_id)
        if booking is None:
            return False
        status, stamp_field = terminal
        if booking.status == status:
            return False
        patch = {"status": status, stamp_field: self._clock()}
        return self._dispatch_booking_patch(movement.booking_id, patch)

    # ------------------------------------------------------------------
    # Link maintenance
    # ------------------------------------------------------------------

    def clear_strip_links(self, booking_id: int) -> int:
        """Clear ``bookingId`` on every strip that points at *booking_id*.

        Used when a booking goes away (or is cancelled) without taking its
        strip with it.
        """
        cleared: list[int] = []
        for movement in self._movements.find_by_booking(booking_id):
            result = self._movements.update_with_result(movement.id, {"bookingId": None}, actor=_SYNC_ACTOR)
            if result is not None and result.changed:
                cleared.append(movement.id)
        if cleared:
            self.notify(ChangeSource.BOOKING_SYNC, EntityKind.MOVEMENT, *cleared)
        return len(cleared)

    def on_movement_deleted(self, movement: Movement) -> bool:
        """Drop the booking's back-reference to a strip that was hard-deleted."""
        if movement.booking_id is None:
            return False
        booking = self._bookings.get_by_id(movement.booking_id)
        if booking is None or booking.linked_strip_id != movement.id:
            return False
        return self._dispatch_booking_patch(booking.id, {"linkedStripId": None})

    def reconcile_links(self) -> ReconcileSummary:
        """Repair the weak references between strips and bookings.

        * a strip pointing at a missing booking loses its pointer;
        * a booking pointing at a missing strip loses its pointer;
        * a booking claimed by exactly one strip points back at it;
        * a booking claimed by no strip stops pointing at a strip that
          belongs to a different booking;
        * a booking claimed by several strips is reported as a conflict
          and left exactly as it is;
        * pointers to records the stores kept aside on load are left alone.

        Records are never deleted. Running it again straight away changes
        nothing.
        """
        # Records kept aside on load still exist in storage; links to them stay.
        booking_ids = {b.id for b in self._bookings.list()} | self._bookings.quarantined_ids
        quarantined_strips = self._movements.quarantined_ids

        cleared_movements = 0
        touched_movements: list[int] = []
        for movement in self._movements.list():
            if movement.booking_id is not None and movement.booking_id not in booking_ids:
                result = self._movements.update_with_result(movement.id, {"bookingId": None}, actor=_RECONCILE_ACTOR)
                if result is not None and result.changed:
                    cleared_movements += 1
                    touched_movements.append(movement.id)

        movements_by_id = {m.id: m for m in self._movements.list()}
        claims: dict[int, list[int]] = defaultdict(list)
        for movement in movements_by_id.values():
            if movement.booking_id is not None:
                claims[movement.booking_id].append(movement.id)

        cleared_bookings = 0
        repaired_bookings = 0
        conflicts: list[LinkConflict] = []
        touched_bookings: list[int] = []

        for booking in self._bookings.list():
            linked = booking.linked_strip_id
            claimants = claims.get(booking.id, [])

            if len(claimants) == 1:
                target = claimants[0]
            elif len(claimants) > 1:
                conflicts.append(LinkConflict(booking_id=booking.id, movement_ids=tuple(claimants)))
                target = linked if linked in movements_by_id or linked in quarantined_strips else None
            elif linked in quarantined_strips:
                target = linked
            else:
                # Unclaimed: a pointer is either dangling or aimed at a strip
                # that belongs to some other booking.
                target = None

            if target == linked:
                continue
            result = self._bookings.update_with_result(booking.id, {"linkedStripId": target}, actor=_RECONCILE_ACTOR)
            if result is None or not result.changed:
                continue
            touched_bookings.append(booking.id)
            if target is None:
                cleared_bookings += 1
            else:
                repaired_bookings += 1

        summary = ReconcileSummary(
            cleared_movement_booking_ids=cleared_movements,
            cleared_booking_linked_strip_ids=cleared_bookings,
            repaired_booking_linked_strip_ids=repaired_bookings,
            conflicts=tuple(conflicts),
        )
        if conflicts:
            _logger.warning(
                "Link conflicts: %s",
                ", ".join(f"booking {c.booking_id} <- strips {list(c.movement_ids)}" for c in conflicts),
            )
        if summary.changed:
            _logger.debug("Reconciliation summary: %s", summary)
            self.notify(ChangeSource.RECONCILE, EntityKind.LINKS, *touched_movements, *touched_bookings)
        return summary
