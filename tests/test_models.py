"""Tests for record parsing with FdmsBaseModel and the shared field types."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from fdms.models import (
    Booking,
    BookingSchedule,
    Formation,
    FormationElement,
    Movement,
    MovementStatus,
    PlannedTimeKind,
    Wtc,
    max_wtc,
)
from fdms.models._base import parse_clock_time, parse_optional_id, validation_error_from

# ------------------------------------------------------------------
# Field types
# ------------------------------------------------------------------


class TestFieldTypes:
    @pytest.mark.parametrize(("raw", "expected"), [("0930", "09:30"), ("09:30", "09:30"), ("", ""), (None, "")])
    def test_clock_time(self, raw: str | None, expected: str) -> None:
        assert parse_clock_time(raw) == expected

    def test_clock_time_rejects_out_of_range(self) -> None:
        with pytest.raises(ValueError, match="HH:MM"):
            parse_clock_time("25:00")

    def test_optional_ref_blank_means_no_link(self) -> None:
        assert parse_optional_id("") is None
        assert parse_optional_id(0) is None
        assert parse_optional_id("7") == 7

    def test_max_wtc(self) -> None:
        assert max_wtc(["L", "M", "L"]) == Wtc.M
        assert max_wtc(["J", "H"]) == Wtc.J
        assert max_wtc([]) is None


# ------------------------------------------------------------------
# Movement
# ------------------------------------------------------------------


class TestMovement:
    def test_minimal_record(self) -> None:
        movement = Movement.model_validate({"id": 1, "flightType": "ARR", "callsignCode": "g-bsxy"})
        assert movement.callsign_code == "G-BSXY"
        assert movement.status == MovementStatus.PLANNED
        assert movement.booking_id is None
        assert movement.formation is None

    def test_blank_callsign_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Movement.model_validate({"id": 1, "flightType": "ARR", "callsignCode": "  "})

    def test_presentation_fields_round_trip(self) -> None:
        movement = Movement.model_validate(
            {"id": 3, "flightType": "LOC", "callsignCode": "UAM01", "egowCode": "BM", "callsignVoice": "UNIFORM"}
        )
        wire = movement.to_wire()
        assert wire["egowCode"] == "BM"
        assert wire["callsignVoice"] == "UNIFORM"
        assert wire["callsignCode"] == "UAM01"

    def test_single_element_formation_is_dropped(self) -> None:
        movement = Movement.model_validate(
            {
                "id": 1,
                "flightType": "DEP",
                "callsignCode": "CNNCT",
                "formation": {"label": "solo", "elements": [{"callsign": "CNNCT 1", "wtc": "L"}]},
            }
        )
        assert movement.formation is None

    def test_formation_label_defaults_to_callsign(self) -> None:
        movement = Movement.model_validate(
            {
                "id": 1,
                "flightType": "DEP",
                "callsignCode": "red",
                "formation": {"elements": [{"wtc": "L"}, {"wtc": "L"}]},
            }
        )
        assert movement.formation is not None
        assert movement.formation.label == "RED flight of 2"

    def test_weak_booking_reference_zero_is_unlinked(self) -> None:
        movement = Movement.model_validate({"id": 1, "flightType": "ARR", "callsignCode": "X", "bookingId": 0})
        assert movement.booking_id is None


# ------------------------------------------------------------------
# Formation
# ------------------------------------------------------------------


class TestFormation:
    def test_wtc_current_and_max(self) -> None:
        formation = Formation.model_validate({"elements": [{"wtc": "L"}, {"wtc": "L"}, {"wtc": "M"}]})
        assert formation.wtc_current == "M"
        assert formation.wtc_max == "M"

    def test_wtc_current_ignores_finished_elements(self) -> None:
        formation = Formation.model_validate(
            {"elements": [{"wtc": "M", "status": "COMPLETED"}, {"wtc": "L", "status": "ACTIVE"}]}
        )
        assert formation.wtc_current == "L"
        assert formation.wtc_max == "M"

    def test_wtc_max_never_drops_below_recorded(self) -> None:
        formation = Formation.model_validate({"wtcMax": "H", "elements": [{"wtc": "L"}, {"wtc": "L"}]})
        assert formation.wtc_max == "H"

    def test_all_finished_clears_current(self) -> None:
        formation = Formation.model_validate(
            {"elements": [{"wtc": "M", "status": "COMPLETED"}, {"wtc": "L", "status": "CANCELLED"}]}
        )
        assert formation.wtc_current == ""

    def test_element_count_bounds(self) -> None:
        with pytest.raises(ValidationError):
            Formation.model_validate({"elements": [{"wtc": "L"}]})
        with pytest.raises(ValidationError):
            Formation.model_validate({"elements": [{"wtc": "L"}] * 13})

    def test_element_wtc_lowercase_accepted(self) -> None:
        element = FormationElement.model_validate({"wtc": "m"})
        assert element.wtc == Wtc.M

    def test_element_wtc_word_rejected(self) -> None:
        with pytest.raises(ValidationError):
            FormationElement.model_validate({"wtc": "HEAVY"})

    def test_element_aerodrome_must_be_four_characters(self) -> None:
        with pytest.raises(ValidationError):
            FormationElement.model_validate({"wtc": "L", "depAd": "EGO"})

    def test_element_aerodrome_upper_cased(self) -> None:
        element = FormationElement.model_validate({"wtc": "L", "arrAd": "egll"})
        assert element.arr_ad == "EGLL"

    def test_validation_error_is_human_readable(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            FormationElement.model_validate({"wtc": "L", "depAd": "EGO"})
        error = validation_error_from(exc_info.value)
        assert error.field == "depAd"
        assert "4-character" in error.reason


# ------------------------------------------------------------------
# Booking
# ------------------------------------------------------------------


class TestBookingSchedule:
    def test_legacy_arrival_alias_becomes_canonical(self) -> None:
        schedule = BookingSchedule.model_validate({"arrivalTimeLocalHHMM": "1430"})
        assert schedule.planned_time_local_hhmm == "14:30"
        assert schedule.planned_time_kind == PlannedTimeKind.ARR

    def test_arrival_alias_back_filled_for_loc(self) -> None:
        schedule = BookingSchedule.model_validate({"plannedTimeLocalHHMM": "10:00", "plannedTimeKind": "LOC"})
        assert schedule.arrival_time_local_hhmm == "10:00"

    def test_departure_time_never_fills_arrival_alias(self) -> None:
        schedule = BookingSchedule.model_validate({"plannedTimeLocalHHMM": "10:00", "plannedTimeKind": "DEP"})
        assert schedule.arrival_time_local_hhmm == ""

    def test_wire_keys(self) -> None:
        wire = BookingSchedule.model_validate({"dateISO": "2026-03-01"}).to_wire()
        assert wire["dateISO"] == "2026-03-01"
        assert "plannedTimeLocalHHMM" in wire


class TestBooking:
    def test_null_groups_become_defaults(self) -> None:
        booking = Booking.model_validate({"id": 4, "contact": None, "aircraft": None})
        assert booking.contact.name == ""
        assert booking.aircraft.registration == ""

    def test_unknown_charge_fields_kept(self) -> None:
        booking = Booking.model_validate({"id": 4, "charges": {"landingFee": 12.5}})
        assert booking.to_wire()["charges"] == {"landingFee": 12.5}
