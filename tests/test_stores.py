from __future__ import annotations

import json
from datetime import UTC, datetime

import pytest

from fdms._constants import BOOKINGS_STORAGE_KEY, MOVEMENTS_STORAGE_KEY
from fdms.exceptions import FdmsPersistenceError, FdmsStorageQuotaError, FdmsValidationError
from fdms.models import BookingStatus, MovementStatus
from fdms.persistence import MemoryStorage
from fdms.state.bookings import BookingStore
from fdms.state.movements import MovementStore


def _dt() -> datetime:
    return datetime(2026, 5, 1, 9, 0, tzinfo=UTC)


def _strip(**fields: object) -> dict:
    data: dict = {"flightType": "ARR", "callsignCode": "G-BSXY", "depAd": "EGNS", "arrAd": "EGOW"}
    data.update(fields)
    return data


@pytest.fixture
def backend() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def movements(backend: MemoryStorage) -> MovementStore:
    return MovementStore(backend, clock=_dt)


@pytest.fixture
def bookings(backend: MemoryStorage) -> BookingStore:
    return BookingStore(backend, clock=_dt)


# ------------------------------------------------------------------
# MovementStore
# ------------------------------------------------------------------


class TestMovementStore:
    def test_create_allocates_ids_and_logs(self, movements: MovementStore) -> None:
        first = movements.create(_strip())
        second = movements.create(_strip(callsignCode="G-OOPS"))
        assert (first.id, second.id) == (1, 2)
        assert first.created_at == _dt()
        assert [entry.action for entry in first.change_log] == ["created"]
        assert first.change_log[0].actor == "system"

    def test_create_ignores_caller_id(self, movements: MovementStore) -> None:
        movements.create(_strip())
        created = movements.create(_strip(id=1))
        assert created.id == 2

    def test_create_writes_envelope(self, backend: MemoryStorage, movements: MovementStore) -> None:
        movements.create(_strip())
        stored = json.loads(backend.get(MOVEMENTS_STORAGE_KEY) or "{}")
        assert stored["schemaVersion"] == 3
        assert stored["movements"][0]["callsignCode"] == "G-BSXY"

    def test_invalid_create_rejected(self, movements: MovementStore) -> None:
        with pytest.raises(FdmsValidationError):
            movements.create(_strip(callsignCode=""))
        assert len(movements) == 0

    def test_update_records_changes(self, movements: MovementStore) -> None:
        created = movements.create(_strip())
        result = movements.update_with_result(created.id, {"arr_planned": "1415"}, actor="tower")
        assert result is not None
        assert result.changed
        assert result.record.arr_planned == "14:15"
        assert result.changes["arrPlanned"].new == "14:15"
        entry = result.record.change_log[-1]
        assert (entry.action, entry.actor) == ("updated", "tower")

    def test_noop_update_leaves_log_alone(self, backend: MemoryStorage, movements: MovementStore) -> None:
        created = movements.create(_strip(remarks="PPR"))
        before = backend.get(MOVEMENTS_STORAGE_KEY)
        result = movements.update_with_result(created.id, {"remarks": "PPR", "arrAd": "egow"})
        assert result is not None
        assert not result.changed
        assert result.record is created
        assert backend.get(MOVEMENTS_STORAGE_KEY) == before

    def test_invalid_update_leaves_record(self, movements: MovementStore) -> None:
        created = movements.create(_strip())
        with pytest.raises(FdmsValidationError):
            movements.update(created.id, {"arrPlanned": "99:99"})
        assert movements.get(created.id) == created

    def test_id_cannot_change(self, movements: MovementStore) -> None:
        created = movements.create(_strip())
        with pytest.raises(FdmsValidationError, match="cannot be changed"):
            movements.update(created.id, {"id": 9})

    def test_update_missing_returns_none(self, movements: MovementStore) -> None:
        assert movements.update(42, {"remarks": "x"}) is None

    def test_delete_and_find_by_booking(self, movements: MovementStore) -> None:
        linked = movements.create(_strip(bookingId=5))
        movements.create(_strip())
        assert [m.id for m in movements.find_by_booking(5)] == [linked.id]
        assert movements.delete(linked.id)
        assert not movements.delete(linked.id)
        assert movements.find_by_booking(5) == []

    def test_ids_not_reused_after_delete(self, movements: MovementStore) -> None:
        movements.create(_strip())
        second = movements.create(_strip())
        movements.delete(second.id)
        assert movements.create(_strip()).id == 3

    def test_quota_failure_keeps_memory_state(self) -> None:
        store = MovementStore(MemoryStorage(quota_bytes=64), clock=_dt)
        created = store.create(_strip())
        assert store.get(created.id) == created
        assert isinstance(store.last_persist_error, FdmsStorageQuotaError)
        assert store.flush_to_persistence() is False

    def test_reload_from_persistence(self, backend: MemoryStorage, movements: MovementStore) -> None:
        movements.create(_strip(status="ACTIVE"))
        reloaded = MovementStore(backend, clock=_dt)
        assert [m.status for m in reloaded.list()] == [MovementStatus.ACTIVE]
        assert reloaded.create(_strip()).id == 2

    def test_invalid_persisted_record_skipped(self, backend: MemoryStorage) -> None:
        backend.set(
            MOVEMENTS_STORAGE_KEY,
            json.dumps(
                {
                    "schemaVersion": 3,
                    "movements": [
                        {"id": 1, "flightType": "ARR", "callsignCode": "OK"},
                        {"id": 2, "flightType": "ARR"},
                        {"id": 1, "flightType": "DEP", "callsignCode": "DUP"},
                    ],
                }
            ),
        )
        store = MovementStore(backend, clock=_dt)
        assert [m.callsign_code for m in store.list()] == ["OK"]

    def test_invalid_persisted_record_survives_writes(self, backend: MemoryStorage) -> None:
        legacy = {"id": 1, "flightType": "ARR", "callsignCode": "", "remarks": "paper strip"}
        backend.set(
            MOVEMENTS_STORAGE_KEY,
            json.dumps(
                {"schemaVersion": 3, "movements": [legacy, {"id": 2, "flightType": "DEP", "callsignCode": "OK"}]}
            ),
        )
        store = MovementStore(backend, clock=_dt)
        store.init()
        assert store.quarantined_ids == frozenset({1})

        created = store.create(_strip())

        assert created.id == 3
        stored = json.loads(backend.get(MOVEMENTS_STORAGE_KEY) or "{}")["movements"]
        assert sorted(r["id"] for r in stored) == [1, 2, 3]
        assert legacy in stored

    def test_unreadable_collection_is_not_overwritten(self) -> None:
        class _FailingRead(MemoryStorage):
            def get(self, key: str) -> str | None:
                raise FdmsPersistenceError("disk on fire", key=key)

        backend = _FailingRead()
        store = MovementStore(backend, clock=_dt)

        created = store.create(_strip())

        assert store.get(created.id) == created
        assert isinstance(store.last_persist_error, FdmsPersistenceError)
        assert backend.keys() == []


# ------------------------------------------------------------------
# BookingStore
# ------------------------------------------------------------------


class TestBookingStore:
    def test_nested_groups_deep_merge(self, bookings: BookingStore) -> None:
        created = bookings.create(
            {"contact": {"name": "A. Pilot", "phone": "0123"}, "aircraft": {"registration": "G-BSXY"}}
        )
        updated = bookings.update(created.id, {"contact": {"phone": "0999"}})
        assert updated is not None
        assert updated.contact.name == "A. Pilot"
        assert updated.contact.phone == "0999"
        assert updated.aircraft.registration == "G-BSXY"

    def test_status_overwritten(self, bookings: BookingStore) -> None:
        created = bookings.create({})
        updated = bookings.update(created.id, {"status": "CANCELLED"})
        assert updated is not None
        assert updated.status == BookingStatus.CANCELLED

    def test_noop_patch_detected(self, bookings: BookingStore) -> None:
        created = bookings.create({"schedule": {"dateISO": "2026-05-01", "plannedTimeLocalHHMM": "14:00"}})
        result = bookings.update_with_result(created.id, {"schedule": {"dateISO": "2026-05-01"}})
        assert result is not None
        assert not result.changed
        assert len(result.record.change_log) == 1

    def test_timestamps(self, bookings: BookingStore) -> None:
        created = bookings.create({})
        assert created.created_at_utc == _dt()
        assert created.updated_at_utc == _dt()

    def test_get_by_id(self, bookings: BookingStore) -> None:
        created = bookings.create({})
        assert bookings.get_by_id(created.id) == created
        assert bookings.get_by_id(None) is None

    def test_persisted_under_booking_key(self, backend: MemoryStorage, bookings: BookingStore) -> None:
        bookings.create({"ops": {"notes": "fuel"}})
        stored = json.loads(backend.get(BOOKINGS_STORAGE_KEY) or "{}")
        assert stored["schemaVersion"] == 2
        assert stored["bookings"][0]["ops"]["notes"] == "fuel"
