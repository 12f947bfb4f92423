"""Base model and shared field types for fdms records.

Every persisted record inherits from :class:`FdmsBaseModel` which
provides:

* ``alias_generator=to_camel`` so the camelCase keys of the persisted
  JSON map automatically to snake_case fields.
* ``extra="allow"`` so presentation-only keys (``callsignVoice``,
  ``egowCode`` ...) round-trip through the stores untouched.
* Frozen instances: stores replace records wholesale, they never mutate
  one in place.
"""

from __future__ import annotations

import enum
import re
from datetime import date
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from fdms.exceptions import FdmsValidationError

_CLOCK_RE = re.compile(r"^([01]\d|2[0-3]):?([0-5]\d)$")


class MovementStatus(enum.StrEnum):
    PLANNED = "PLANNED"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @property
    def is_live(self) -> bool:
        """PLANNED and ACTIVE strips (and elements) are still in play."""
        return self in (MovementStatus.PLANNED, MovementStatus.ACTIVE)

    @property
    def is_terminal(self) -> bool:
        return not self.is_live


class FlightType(enum.StrEnum):
    ARR = "ARR"
    DEP = "DEP"
    LOC = "LOC"
    OVR = "OVR"


class BookingStatus(enum.StrEnum):
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


class PlannedTimeKind(enum.StrEnum):
    ARR = "ARR"
    DEP = "DEP"
    LOC = "LOC"


class Wtc(enum.StrEnum):
    """ICAO wake turbulence category, ordered light to super."""

    L = "L"
    M = "M"
    H = "H"
    J = "J"

    @property
    def rank(self) -> int:
        return _WTC_ORDER.index(self)


_WTC_ORDER: tuple[Wtc, ...] = (Wtc.L, Wtc.M, Wtc.H, Wtc.J)


def max_wtc(values: Any) -> Wtc | None:
    """Return the heaviest category in *values*, or ``None`` when empty."""
    ranked = [Wtc(v) for v in values]
    if not ranked:
        return None
    return max(ranked, key=lambda w: w.rank)


def parse_clock_time(value: Any) -> str:
    """Normalise a local clock time to ``HH:MM``.

    ``None`` and blank strings become ``""`` (not set). ``HHMM`` is accepted
    and reformatted. Anything else raises :class:`ValueError`.
    """
    if value is None:
        return ""
    text = str(value).strip()
    if not text:
        return ""
    match = _CLOCK_RE.match(text)
    if match is None:
        raise ValueError(f"time must be HH:MM, got {text!r}")
    return f"{match.group(1)}:{match.group(2)}"


def parse_iso_date(value: Any) -> str:
    """Validate an ISO ``YYYY-MM-DD`` date string; blank means not set."""
    if value is None:
        return ""
    if isinstance(value, date):
        return value.isoformat()
    text = str(value).strip()
    if not text:
        return ""
    try:
        return date.fromisoformat(text).isoformat()
    except ValueError as exc:
        raise ValueError(f"date must be YYYY-MM-DD, got {text!r}") from exc


def parse_optional_id(value: Any) -> int | None:
    """Weak references: blank, zero and ``None`` all mean "no link"."""
    if value is None or value == "" or value == 0:
        return None
    return int(value)


ClockTime = Annotated[str, BeforeValidator(parse_clock_time)]
"""Annotated ``HH:MM`` local clock time; empty string when unset."""

IsoDate = Annotated[str, BeforeValidator(parse_iso_date)]
"""Annotated ISO calendar date; empty string when unset."""

OptionalRef = Annotated[int | None, BeforeValidator(parse_optional_id)]
"""Annotated optional foreign key with no ownership semantics."""


class FdmsBaseModel(BaseModel):
    """Base for persisted fdms records."""

    model_config = ConfigDict(
        frozen=True,
        extra="allow",
        populate_by_name=True,
        alias_generator=to_camel,
        str_strip_whitespace=True,
        use_enum_values=False,
    )

    def to_wire(self) -> dict[str, Any]:
        """Dump to the camelCase JSON-compatible dict that gets persisted."""
        return self.model_dump(mode="json", by_alias=True)


def validation_error_from(exc: ValidationError) -> FdmsValidationError:
    """Collapse a pydantic error into the first human-readable reason."""
    errors = exc.errors()
    if not errors:
        return FdmsValidationError(str(exc))
    first = errors[0]
    field = ".".join(str(part) for part in first.get("loc", ()))
    reason = str(first.get("msg", "invalid value"))
    if reason.startswith("Value error, "):
        reason = reason[len("Value error, ") :]
    return FdmsValidationError(reason, field=field, value=first.get("input"))
