"""Result types for link reconciliation."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class LinkConflict(BaseModel):
    """Several movements claim the same booking; left for a human to resolve."""

    model_config = ConfigDict(frozen=True)

    booking_id: int
    movement_ids: tuple[int, ...]


class ReconcileSummary(BaseModel):
    """What one reconciliation pass changed and what it refused to guess."""

    model_config = ConfigDict(frozen=True)

    cleared_movement_booking_ids: int = 0
    cleared_booking_linked_strip_ids: int = 0
    repaired_booking_linked_strip_ids: int = 0
    conflicts: tuple[LinkConflict, ...] = Field(default_factory=tuple)

    @property
    def changed(self) -> bool:
        """True when the pass wrote anything. Conflicts are reported, never written."""
        return bool(
            self.cleared_movement_booking_ids
            or self.cleared_booking_linked_strip_ids
            or self.repaired_booking_linked_strip_ids
        )
