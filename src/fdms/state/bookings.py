"""Booking store."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any, ClassVar

from fdms._constants import BOOKING_NESTED_GROUPS, BOOKINGS_SCHEMA_VERSION, BOOKINGS_STORAGE_KEY, DEFAULT_ACTOR
from fdms.models.booking import Booking
from fdms.persistence.backend import StorageBackend
from fdms.persistence.collection import CollectionSpec
from fdms.persistence.migrations import BOOKING_MIGRATIONS
from fdms.state.patch import deep_merge
from fdms.state.store import RecordStore, _utcnow


def booking_collection(key: str = BOOKINGS_STORAGE_KEY) -> CollectionSpec:
    return CollectionSpec(
        key=key,
        field="bookings",
        schema_version=BOOKINGS_SCHEMA_VERSION,
        migrations=BOOKING_MIGRATIONS,
    )


class BookingStore(RecordStore[Booking]):
    """Owns the booking collection.

    Patches deep-merge into the nested groups (``contact``, ``schedule``,
    ``aircraft``, ``movement``, ``ops``, ``charges``): nested fields the
    patch does not mention are preserved. Top-level scalars such as
    ``status`` are overwritten.
    """

    model: ClassVar[type[Booking]] = Booking
    created_field: ClassVar[str] = "createdAtUtc"
    updated_field: ClassVar[str] = "updatedAtUtc"
    kind: ClassVar[str] = "booking"

    def __init__(
        self,
        backend: StorageBackend,
        *,
        key: str = BOOKINGS_STORAGE_KEY,
        clock: Callable[[], datetime] = _utcnow,
        actor: str = DEFAULT_ACTOR,
    ) -> None:
        super().__init__(backend, booking_collection(key), clock=clock, actor=actor)

    def _merge(self, current: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
        merged = dict(current)
        for key, value in patch.items():
            existing = merged.get(key)
            if key in BOOKING_NESTED_GROUPS and isinstance(value, Mapping) and isinstance(existing, dict):
                merged[key] = deep_merge(existing, value)
            else:
                merged[key] = value
        return merged

    def get_by_id(self, booking_id: int | None) -> Booking | None:
        return self.get(booking_id)
