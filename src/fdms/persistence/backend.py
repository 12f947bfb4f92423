"""Key/value persistence backends.

The stores persist one JSON document per collection under a fixed key, the
same way the browser build keeps them in ``localStorage``. A backend only
moves strings; envelopes and migrations live in
:mod:`fdms.persistence.collection`.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Protocol

from fdms.exceptions import FdmsPersistenceError, FdmsStorageQuotaError

_logger = logging.getLogger(__name__)


class StorageBackend(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...


class MemoryStorage:
    """Process-local backend.

    ``quota_bytes`` mimics a browser storage quota: a write that would push
    the total stored size past it raises :class:`FdmsStorageQuotaError` and
    leaves the previous value in place.
    """

    def __init__(self, *, quota_bytes: int | None = None) -> None:
        self._quota_bytes = quota_bytes
        self._items: dict[str, str] = {}

    def _size_with(self, key: str, value: str) -> int:
        total = sum(len(k) + len(v) for k, v in self._items.items() if k != key)
        return total + len(key) + len(value)

    def get(self, key: str) -> str | None:
        return self._items.get(key)

    def set(self, key: str, value: str) -> None:
        if self._quota_bytes is not None and self._size_with(key, value) > self._quota_bytes:
            raise FdmsStorageQuotaError(
                f"writing {len(value)} bytes would exceed quota of {self._quota_bytes} bytes",
                key=key,
            )
        self._items[key] = value

    def remove(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._items)


class JsonFileStorage:
    """One ``<key>.json`` file per key inside *directory*.

    Writes go to a temporary file in the same directory which is then
    renamed over the target, so a crash mid-write never leaves a truncated
    document behind.
    """

    def __init__(self, directory: Path | str) -> None:
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def _path(self, key: str) -> Path:
        if not key or "/" in key or "\\" in key or key.startswith("."):
            raise FdmsPersistenceError(f"invalid storage key {key!r}", key=key)
        return self._directory / f"{key}.json"

    def get(self, key: str) -> str | None:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise FdmsPersistenceError(f"failed to read {path}: {exc}", key=key) from exc

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{key}.", suffix=".tmp", dir=self._directory)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(value)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise FdmsPersistenceError(f"failed to write {path}: {exc}", key=key) from exc
        _logger.debug("Wrote %d bytes to %s", len(value), path)

    def remove(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise FdmsPersistenceError(f"failed to remove {path}: {exc}", key=key) from exc

    def keys(self) -> list[str]:
        if not self._directory.is_dir():
            return []
        return sorted(p.stem for p in self._directory.glob("*.json"))
