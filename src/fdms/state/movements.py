"""Movement store."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import ClassVar

from fdms._constants import DEFAULT_ACTOR, LEGACY_MOVEMENTS_STORAGE_KEY, MOVEMENTS_SCHEMA_VERSION, MOVEMENTS_STORAGE_KEY
from fdms.models.movement import Movement
from fdms.persistence.backend import StorageBackend
from fdms.persistence.collection import CollectionSpec
from fdms.persistence.migrations import MOVEMENT_MIGRATIONS
from fdms.state.store import RecordStore, _utcnow


def movement_collection(key: str = MOVEMENTS_STORAGE_KEY) -> CollectionSpec:
    return CollectionSpec(
        key=key,
        field="movements",
        schema_version=MOVEMENTS_SCHEMA_VERSION,
        migrations=MOVEMENT_MIGRATIONS,
        legacy_keys=(LEGACY_MOVEMENTS_STORAGE_KEY,),
    )


class MovementStore(RecordStore[Movement]):
    """Owns the movement collection.

    Patches overwrite top-level fields; an embedded formation is replaced
    as a whole. Formation rules are applied by :mod:`fdms.formation` before
    the patch reaches the store.
    """

    model: ClassVar[type[Movement]] = Movement
    created_field: ClassVar[str] = "createdAt"
    updated_field: ClassVar[str] = "updatedAt"
    kind: ClassVar[str] = "movement"

    def __init__(
        self,
        backend: StorageBackend,
        *,
        key: str = MOVEMENTS_STORAGE_KEY,
        clock: Callable[[], datetime] = _utcnow,
        actor: str = DEFAULT_ACTOR,
    ) -> None:
        super().__init__(backend, movement_collection(key), clock=clock, actor=actor)

    def find_by_booking(self, booking_id: int) -> list[Movement]:
        """Every movement whose weak reference points at *booking_id*."""
        return [m for m in self.list() if m.booking_id == booking_id]
