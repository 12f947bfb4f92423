"""Formation sub-records embedded in a master movement."""

from __future__ import annotations

import re
from typing import Any

from pydantic import Field, field_validator, model_validator

from fdms._constants import FORMATION_MAX_ELEMENTS, FORMATION_MIN_ELEMENTS
from fdms.models._base import ClockTime, FdmsBaseModel, MovementStatus, Wtc, max_wtc

_AERODROME_RE = re.compile(r"^[A-Z0-9]{4}$")


def parse_element_aerodrome(value: Any) -> str:
    """Validate an element aerodrome override.

    Empty means "inherit from the master strip". Anything else must be a
    4-character code.
    """
    if value is None:
        return ""
    text = str(value).strip().upper()
    if not text:
        return ""
    if not _AERODROME_RE.match(text):
        raise ValueError(f"aerodrome must be a 4-character code, got {text!r}")
    return text


def parse_wtc(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().upper()
    return value


class FormationElement(FdmsBaseModel):
    """One aircraft of a formation.

    Lifecycle is bound to the master movement: elements are only ever
    persisted as part of it.
    """

    callsign: str = ""
    reg: str = ""
    type: str = ""
    wtc: Wtc
    status: MovementStatus = MovementStatus.PLANNED
    dep_ad: str = ""
    arr_ad: str = ""
    dep_actual: ClockTime = ""
    arr_actual: ClockTime = ""
    overrides: tuple[str, ...] = ()
    """Inheritable fields (wire names) this element has set itself."""

    @field_validator("wtc", mode="before")
    @classmethod
    def _wtc_upper(cls, value: Any) -> Any:
        return parse_wtc(value)

    @field_validator("dep_ad", "arr_ad", mode="before")
    @classmethod
    def _validate_aerodrome(cls, value: Any) -> str:
        return parse_element_aerodrome(value)


class Formation(FdmsBaseModel):
    """A group of aircraft flying together under one master strip.

    ``wtc_current`` and ``wtc_max`` are derived on every validation:

    * ``wtc_current`` is the heaviest category among PLANNED/ACTIVE
      elements, ``""`` once none remain.
    * ``wtc_max`` never decreases: it is the heaviest of the previously
      recorded maximum and every element's category.
    """

    label: str = ""
    wtc_current: str = ""
    wtc_max: str = ""
    elements: tuple[FormationElement, ...] = Field(default_factory=tuple)

    @field_validator("label", mode="before")
    @classmethod
    def _label_text(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("wtc_current", "wtc_max", mode="before")
    @classmethod
    def _blank_or_wtc(cls, value: Any) -> str:
        if value is None:
            return ""
        text = str(value).strip().upper()
        if text and text not in Wtc.__members__:
            return ""
        return text

    @model_validator(mode="after")
    def _derive_wtc(self) -> Formation:
        count = len(self.elements)
        if count < FORMATION_MIN_ELEMENTS:
            raise ValueError(f"a formation needs at least {FORMATION_MIN_ELEMENTS} elements, got {count}")
        if count > FORMATION_MAX_ELEMENTS:
            raise ValueError(f"a formation allows at most {FORMATION_MAX_ELEMENTS} elements, got {count}")

        current = max_wtc(el.wtc for el in self.elements if el.status.is_live)
        observed = [el.wtc for el in self.elements]
        if self.wtc_max:
            observed.append(Wtc(self.wtc_max))
        ceiling = max_wtc(observed)

        object.__setattr__(self, "wtc_current", current.value if current else "")
        object.__setattr__(self, "wtc_max", ceiling.value if ceiling else "")
        return self
