"""Data-changed notifications.

Presentation code subscribes to one channel and re-renders when told that
persisted state actually changed. No-op writes never produce an event.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

_logger = logging.getLogger(__name__)


class ChangeSource(StrEnum):
    MOVEMENT_STORE = "movementStore"
    BOOKING_STORE = "bookingStore"
    BOOKING_SYNC = "bookingSync"
    RECONCILE = "reconcile"


class EntityKind(StrEnum):
    MOVEMENT = "movement"
    BOOKING = "booking"
    LINKS = "links"


class DataChangedEvent(BaseModel):
    """One "data changed" announcement."""

    model_config = ConfigDict(frozen=True)

    source: ChangeSource
    entity: EntityKind
    record_ids: tuple[int, ...] = Field(default_factory=tuple)
    observed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


Subscriber = Callable[[DataChangedEvent], None]


class ChangeNotifier:
    """Explicit subscriber list; replaces a process-wide event bus."""

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []
        self.emitted = 0

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register *callback*; returns a function that unregisters it."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def emit(self, event: DataChangedEvent) -> None:
        self.emitted += 1
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                _logger.warning("data-changed subscriber failed", exc_info=True)
