"""Persistence layer: key/value backends, envelopes and migrations."""

from fdms.persistence.backend import JsonFileStorage, MemoryStorage, StorageBackend
from fdms.persistence.collection import CollectionSpec, load_collection, write_collection
from fdms.persistence.migrations import BOOKING_MIGRATIONS, MOVEMENT_MIGRATIONS, Migration

__all__ = [
    "BOOKING_MIGRATIONS",
    "CollectionSpec",
    "JsonFileStorage",
    "MOVEMENT_MIGRATIONS",
    "MemoryStorage",
    "Migration",
    "StorageBackend",
    "load_collection",
    "write_collection",
]
