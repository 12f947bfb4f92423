"""Versioned envelopes around a persisted record collection.

Layout under each key::

    {"schemaVersion": 3, "timestamp": "...", "movements": [...]}

Older layouts (a bare list, or ``version`` instead of ``schemaVersion``)
are read and migrated on load.
"""

from __future__ import annotations

import dataclasses
import json
import logging
from datetime import datetime
from typing import Any

from fdms._constants import UNREADABLE_KEY_SUFFIX
from fdms.exceptions import FdmsPersistenceError
from fdms.persistence.backend import StorageBackend
from fdms.persistence.migrations import Migration, Records, migrate

_logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class CollectionSpec:
    """Where and how one collection is persisted."""

    key: str
    field: str
    schema_version: int
    migrations: tuple[Migration, ...] = ()
    legacy_keys: tuple[str, ...] = ()


@dataclasses.dataclass(frozen=True)
class _Envelope:
    records: Records
    version: int


def _parse_envelope(raw: str, *, field: str, key: str) -> _Envelope | None:
    try:
        parsed = json.loads(raw)
    except ValueError:
        _logger.warning("Ignoring unparseable JSON under %s", key)
        return None

    if isinstance(parsed, list):
        return _Envelope(records=[r for r in parsed if isinstance(r, dict)], version=1)

    if not isinstance(parsed, dict) or not isinstance(parsed.get(field), list):
        _logger.warning("Ignoring %s: no %r list in stored document", key, field)
        return None

    version = parsed.get("schemaVersion", parsed.get("version", 1))
    if not isinstance(version, int):
        version = 1
    return _Envelope(records=[r for r in parsed[field] if isinstance(r, dict)], version=version)


def encode_collection(spec: CollectionSpec, records: Records, *, now: datetime) -> str:
    """Serialize *records* into the current envelope layout."""
    payload: dict[str, Any] = {
        "schemaVersion": spec.schema_version,
        "timestamp": now.isoformat(),
        spec.field: records,
    }
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def write_collection(backend: StorageBackend, spec: CollectionSpec, records: Records, *, now: datetime) -> None:
    """Write the envelope. Raises :class:`FdmsPersistenceError` on failure."""
    try:
        encoded = encode_collection(spec, records, now=now)
    except (TypeError, ValueError) as exc:
        raise FdmsPersistenceError(f"failed to serialize {spec.field}: {exc}", key=spec.key) from exc
    backend.set(spec.key, encoded)


def _back_up_unreadable(backend: StorageBackend, key: str, raw: str) -> None:
    backup_key = f"{key}{UNREADABLE_KEY_SUFFIX}"
    if backend.get(backup_key) is not None:
        _logger.warning("%s already holds an unreadable copy; leaving it in place", backup_key)
        return
    try:
        backend.set(backup_key, raw)
    except FdmsPersistenceError:
        _logger.warning("Failed to back up unreadable %s", key, exc_info=True)
        return
    _logger.warning("Copied unreadable %s to %s", key, backup_key)


def load_collection(backend: StorageBackend, spec: CollectionSpec, *, now: datetime) -> Records:
    """Read, migrate and (when needed) rewrite a collection.

    A legacy key is only removed after the migrated document has been written
    successfully under the current key. A failed rewrite is logged; the
    migrated records are still returned so the session can proceed. A stored
    document that cannot be parsed is copied to ``<key>_unreadable`` before
    an empty collection is returned.
    """
    source_key = spec.key
    envelope: _Envelope | None = None

    raw = backend.get(spec.key)
    if raw is not None:
        envelope = _parse_envelope(raw, field=spec.field, key=spec.key)
        if envelope is None:
            _back_up_unreadable(backend, spec.key, raw)
    else:
        for legacy_key in spec.legacy_keys:
            legacy_raw = backend.get(legacy_key)
            if legacy_raw is None:
                continue
            envelope = _parse_envelope(legacy_raw, field=spec.field, key=legacy_key)
            if envelope is not None:
                source_key = legacy_key
                break

    if envelope is None:
        return []

    records = envelope.records
    version = envelope.version
    if version > spec.schema_version:
        _logger.warning(
            "%s has schema version %d, newer than supported %d; loading as-is",
            source_key,
            version,
            spec.schema_version,
        )
        return records

    if version < spec.schema_version:
        records, version = migrate(records, from_version=version, migrations=spec.migrations)
        _logger.debug("Migrated %s from v%d to v%d", source_key, envelope.version, version)

    if version == envelope.version and source_key == spec.key:
        return records

    try:
        write_collection(backend, spec, records, now=now)
    except FdmsPersistenceError:
        _logger.warning("Failed to persist migrated %s; keeping %s", spec.field, source_key, exc_info=True)
        return records

    if source_key != spec.key:
        try:
            backend.remove(source_key)
        except FdmsPersistenceError:
            _logger.warning("Failed to retire superseded key %s", source_key, exc_info=True)
    return records
