"""Write-through in-memory record store.

Each store exclusively owns one collection. The in-memory records are the
source of truth for the session; every mutation is written through to the
backend synchronously, and a failed write is logged rather than raised so
the session keeps working on the in-memory state.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any, ClassVar, Generic, TypeVar

from pydantic import ValidationError

from fdms._constants import DEFAULT_ACTOR
from fdms.exceptions import FdmsPersistenceError, FdmsValidationError
from fdms.models._base import FdmsBaseModel, validation_error_from
from fdms.models.movement import ChangeLogEntry, FieldChange
from fdms.persistence.backend import StorageBackend
from fdms.persistence.collection import CollectionSpec, load_collection, write_collection
from fdms.state.patch import diff_fields, to_wire_patch

_logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=FdmsBaseModel)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclasses.dataclass(frozen=True)
class UpdateResult(Generic[RecordT]):
    """A record after an update, with the fields that actually changed."""

    record: RecordT
    changes: dict[str, FieldChange]

    @property
    def changed(self) -> bool:
        return bool(self.changes)


class RecordStore(Generic[RecordT]):
    """Base class for the movement and booking stores.

    Subclasses declare the record model, the wire names of their timestamp
    fields and how a patch is merged into the current record.
    """

    model: ClassVar[type[FdmsBaseModel]]
    created_field: ClassVar[str]
    updated_field: ClassVar[str]
    kind: ClassVar[str]

    def __init__(
        self,
        backend: StorageBackend,
        spec: CollectionSpec,
        *,
        clock: Callable[[], datetime] = _utcnow,
        actor: str = DEFAULT_ACTOR,
    ) -> None:
        self._backend = backend
        self._spec = spec
        self._clock = clock
        self._actor = actor
        self._records: dict[int, RecordT] = {}
        # Persisted dicts that failed validation on load; written back as-is.
        self._quarantined: list[dict[str, Any]] = []
        self._next_id = 1
        self._initialised = False
        self._load_failed = False
        self.last_persist_error: FdmsPersistenceError | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def init(self) -> None:
        """Load persisted records on first use. Safe to call repeatedly."""
        if not self._initialised:
            self.load_from_persistence()

    def load_from_persistence(self) -> None:
        """Replace the in-memory collection with the persisted one.

        Records that fail validation are kept aside, untouched, and written
        back with every later write. If the collection could not be read at
        all, writes are refused until a later load succeeds, so the stored
        document is never replaced by a partial one.
        """
        try:
            raw_records = load_collection(self._backend, self._spec, now=self._clock())
        except (FdmsPersistenceError, OSError):
            _logger.warning("Failed to load %s; starting empty, writes disabled", self._spec.field, exc_info=True)
            raw_records = []
            self._load_failed = True
        else:
            self._load_failed = False

        records: dict[int, RecordT] = {}
        quarantined: list[dict[str, Any]] = []
        for raw in raw_records:
            try:
                record = self.model.model_validate(raw)
            except ValidationError as exc:
                _logger.warning(
                    "Keeping invalid %s id=%s aside: %s", self.kind, raw.get("id"), validation_error_from(exc)
                )
                quarantined.append(raw)
                continue
            record_id = record.id  # type: ignore[attr-defined]
            if record_id in records:
                _logger.warning("Keeping duplicate %s id=%s aside", self.kind, record_id)
                quarantined.append(raw)
                continue
            records[record_id] = record  # type: ignore[assignment]

        self._records = records
        self._quarantined = quarantined
        self._next_id = max([*records, *self.quarantined_ids], default=0) + 1
        self._initialised = True

    @property
    def quarantined_ids(self) -> frozenset[int]:
        """Ids of persisted records that were kept aside on load."""
        ids: set[int] = set()
        for raw in self._quarantined:
            try:
                ids.add(int(raw["id"]))
            except (KeyError, TypeError, ValueError):
                continue
        return frozenset(ids)

    def flush_to_persistence(self) -> bool:
        """Write the whole collection. Returns False if the write failed."""
        self.init()
        return self._persist()

    def _persist(self) -> bool:
        if self._load_failed:
            _logger.warning("Not persisting %s: the stored collection could not be read", self._spec.field)
            self.last_persist_error = FdmsPersistenceError(
                f"{self._spec.field} were not loaded; refusing to overwrite storage", key=self._spec.key
            )
            return False
        wire = [record.to_wire() for record in self._records.values()]
        wire.extend(self._quarantined)
        try:
            write_collection(self._backend, self._spec, wire, now=self._clock())
        except (FdmsPersistenceError, OSError) as exc:
            _logger.warning("Failed to persist %s; keeping in-memory state", self._spec.field, exc_info=True)
            self.last_persist_error = (
                exc if isinstance(exc, FdmsPersistenceError) else FdmsPersistenceError(str(exc), key=self._spec.key)
            )
            return False
        self.last_persist_error = None
        return True

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list(self) -> list[RecordT]:
        """All records in creation order."""
        self.init()
        return list(self._records.values())

    def get(self, record_id: int | None) -> RecordT | None:
        self.init()
        if record_id is None:
            return None
        return self._records.get(record_id)

    def __contains__(self, record_id: object) -> bool:
        self.init()
        return record_id in self._records

    def __len__(self) -> int:
        self.init()
        return len(self._records)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _validate(self, wire: Mapping[str, Any]) -> RecordT:
        try:
            return self.model.model_validate(dict(wire))  # type: ignore[return-value]
        except ValidationError as exc:
            raise validation_error_from(exc) from exc

    def _merge(self, current: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
        return {**current, **patch}

    def _entry(self, action: str, actor: str | None, changes: dict[str, FieldChange]) -> ChangeLogEntry:
        return ChangeLogEntry(timestamp=self._clock(), actor=actor or self._actor, action=action, changes=changes)

    def _protected_fields(self) -> frozenset[str]:
        return frozenset({"id", "changeLog", self.created_field, self.updated_field})

    def _bookkeeping_fields(self) -> frozenset[str]:
        return frozenset({"changeLog", self.updated_field})

    def create(self, data: Mapping[str, Any], *, actor: str | None = None) -> RecordT:
        """Validate and store a new record under a freshly allocated id."""
        self.init()
        wire = to_wire_patch(self.model, data)
        for key in self._protected_fields():
            wire.pop(key, None)

        record_id = max(self._next_id, max(self._records, default=0) + 1)
        now = self._clock()
        wire.update(
            {
                "id": record_id,
                self.created_field: now,
                self.updated_field: now,
                "changeLog": [self._entry("created", actor, {})],
            }
        )
        record = self._validate(wire)

        self._records[record_id] = record
        self._next_id = record_id + 1
        self._persist()
        _logger.debug("Created %s id=%d", self.kind, record_id)
        return record

    def update_with_result(
        self,
        record_id: int,
        patch: Mapping[str, Any],
        *,
        actor: str | None = None,
    ) -> UpdateResult[RecordT] | None:
        """Apply *patch* and report which fields changed.

        Returns ``None`` when the record does not exist. A patch that changes
        nothing returns the current record with an empty change set and does
        not touch storage or the change log.
        """
        self.init()
        current = self._records.get(record_id)
        if current is None:
            return None

        wire_patch = to_wire_patch(self.model, patch)
        patched_id = wire_patch.pop("id", record_id)
        if patched_id != record_id:
            raise FdmsValidationError("record id cannot be changed", field="id", value=patched_id)
        for key in self._protected_fields():
            wire_patch.pop(key, None)

        before = current.to_wire()
        candidate = self._validate(self._merge(before, wire_patch))
        changes = diff_fields(before, candidate.to_wire(), ignore=self._bookkeeping_fields())
        if not changes:
            _logger.debug("No-op update on %s id=%d", self.kind, record_id)
            return UpdateResult(record=current, changes={})

        entry = self._entry("updated", actor, changes)
        updated_name = self._field_name(self.updated_field)
        record = candidate.model_copy(
            update={updated_name: entry.timestamp, "change_log": (*candidate.change_log, entry)}  # type: ignore[attr-defined]
        )
        self._records[record_id] = record  # type: ignore[assignment]
        self._persist()
        return UpdateResult(record=record, changes=changes)  # type: ignore[arg-type]

    def update(self, record_id: int, patch: Mapping[str, Any], *, actor: str | None = None) -> RecordT | None:
        result = self.update_with_result(record_id, patch, actor=actor)
        return result.record if result is not None else None

    def delete(self, record_id: int) -> bool:
        """Hard delete. Returns False if no such record exists."""
        self.init()
        if self._records.pop(record_id, None) is None:
            return False
        self._persist()
        _logger.debug("Deleted %s id=%d", self.kind, record_id)
        return True

    def _field_name(self, wire_key: str) -> str:
        for name, info in self.model.model_fields.items():
            if info.alias == wire_key or name == wire_key:
                return name
        return wire_key
