"""Schema migrations for persisted collections.

A migration is a pure function over the list of raw record dicts. It must
be deterministic and idempotent: running it on already-migrated records is
a no-op. Migrations never touch storage themselves; the collection loader
decides when to rewrite and when to retire a superseded key.
"""

from __future__ import annotations

import copy
import dataclasses
from collections.abc import Callable
from typing import Any

from fdms._constants import FORMATION_MIN_ELEMENTS

Records = list[dict[str, Any]]


@dataclasses.dataclass(frozen=True)
class Migration:
    from_version: int
    to_version: int
    description: str
    apply: Callable[[Records], Records]


def _movements_v1_to_v3(records: Records) -> Records:
    """Bare-list movements to the enveloped v3 layout.

    v3 records always carry a change log, and a formation that lost its
    elements is dropped rather than kept as an empty shell.
    """
    migrated: Records = []
    for record in copy.deepcopy(records):
        if not isinstance(record.get("changeLog"), list):
            record["changeLog"] = []
        formation = record.get("formation")
        if formation is not None:
            elements = formation.get("elements") if isinstance(formation, dict) else None
            if not isinstance(elements, list) or len(elements) < FORMATION_MIN_ELEMENTS:
                record["formation"] = None
        migrated.append(record)
    return migrated


def _bookings_v1_to_v2(records: Records) -> Records:
    """Populate the canonical planned time from the legacy arrival alias."""
    migrated: Records = []
    for record in copy.deepcopy(records):
        schedule = record.get("schedule")
        if isinstance(schedule, dict):
            legacy = schedule.get("arrivalTimeLocalHHMM")
            if legacy and not schedule.get("plannedTimeLocalHHMM"):
                schedule["plannedTimeLocalHHMM"] = legacy
                if not schedule.get("plannedTimeKind"):
                    schedule["plannedTimeKind"] = "ARR"
        migrated.append(record)
    return migrated


MOVEMENT_MIGRATIONS: tuple[Migration, ...] = (
    Migration(1, 3, "wrap movements in a versioned envelope", _movements_v1_to_v3),
)

BOOKING_MIGRATIONS: tuple[Migration, ...] = (
    Migration(1, 2, "canonical plannedTimeLocalHHMM from arrivalTimeLocalHHMM", _bookings_v1_to_v2),
)


def migrate(records: Records, *, from_version: int, migrations: tuple[Migration, ...]) -> tuple[Records, int]:
    """Chain migrations starting at *from_version*.

    Returns the migrated records and the resulting schema version.
    """
    version = from_version
    for migration in sorted(migrations, key=lambda m: m.from_version):
        if migration.from_version != version:
            continue
        records = migration.apply(records)
        version = migration.to_version
    return records, version
