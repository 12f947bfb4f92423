"""Master movement status transitions."""

from __future__ import annotations

from typing import Any

from fdms.exceptions import FdmsTransitionError
from fdms.formation import cascade_master_status
from fdms.models._base import MovementStatus
from fdms.models.movement import Movement

ALLOWED_TRANSITIONS: dict[MovementStatus, frozenset[MovementStatus]] = {
    MovementStatus.PLANNED: frozenset({MovementStatus.ACTIVE, MovementStatus.COMPLETED, MovementStatus.CANCELLED}),
    MovementStatus.ACTIVE: frozenset({MovementStatus.PLANNED, MovementStatus.COMPLETED, MovementStatus.CANCELLED}),
    MovementStatus.COMPLETED: frozenset(),
    MovementStatus.CANCELLED: frozenset(),
}


def check_status_transition(current: MovementStatus, new: MovementStatus) -> None:
    """Raise :class:`FdmsTransitionError` unless *current* may move to *new*.

    Staying in the same status is always allowed.
    """
    if current == new or new in ALLOWED_TRANSITIONS[current]:
        return
    raise FdmsTransitionError(
        f"cannot move from {current.value} to {new.value}",
        field="status",
        value=new.value,
    )


def status_patch(movement: Movement, new_status: MovementStatus | str) -> dict[str, Any]:
    """Patch that moves *movement* to *new_status*, cascading its formation."""
    try:
        status = MovementStatus(new_status)
    except ValueError as exc:
        raise FdmsTransitionError(f"unknown status {new_status!r}", field="status", value=new_status) from exc
    check_status_transition(movement.status, status)
    patch: dict[str, Any] = {"status": status}
    if movement.formation is not None:
        patch["formation"] = cascade_master_status(movement.formation, status)
    return patch
