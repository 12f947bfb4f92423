"""Formation master/element state machine.

A formation lives inside its master movement and is never persisted on its
own. Every function here is pure: it takes a :class:`Formation` and returns
a new one (or raises :class:`FdmsValidationError` and leaves the input as
it was). Callers write the result back through the movement store in the
same patch as the master change that triggered it.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import ValidationError

from fdms._constants import (
    ELEMENT_AERODROME_FIELDS,
    FORMATION_MAX_ELEMENTS,
    FORMATION_MIN_ELEMENTS,
    INHERITABLE_ELEMENT_FIELDS,
)
from fdms.exceptions import FdmsValidationError
from fdms.models._base import MovementStatus, validation_error_from
from fdms.models.formation import Formation, FormationElement, parse_element_aerodrome
from fdms.models.movement import Movement
from fdms.state.patch import to_wire_patch

_CASCADE_STATUSES = frozenset({MovementStatus.COMPLETED, MovementStatus.CANCELLED})

_FIELD_ALIASES = {"dep_ad": "depAd", "arr_ad": "arrAd", "dep_actual": "depActual", "arr_actual": "arrActual"}

# Master field feeding each element aerodrome field.
_MASTER_AERODROME_FIELD = {"depAd": "dep_ad", "arrAd": "arr_ad"}


def _wire_field(name: str) -> str:
    return _FIELD_ALIASES.get(name, name)


def _rebuild(formation: Formation, elements: Sequence[FormationElement | Mapping[str, Any]]) -> Formation:
    wire = formation.to_wire()
    wire["elements"] = [el.to_wire() if isinstance(el, FormationElement) else dict(el) for el in elements]
    try:
        return Formation.model_validate(wire)
    except ValidationError as exc:
        raise validation_error_from(exc) from exc


def _element_at(formation: Formation, index: int) -> FormationElement:
    if not 0 <= index < len(formation.elements):
        raise FdmsValidationError(
            f"formation has {len(formation.elements)} elements, no element {index}",
            field="elements",
            value=index,
        )
    return formation.elements[index]


def build_formation(
    callsign: str,
    elements: Sequence[FormationElement | Mapping[str, Any]],
    *,
    label: str | None = None,
) -> Formation | None:
    """Build a formation for a new master strip.

    Fewer than two elements means no formation at all and returns ``None``.
    More than twelve is rejected. Blank element callsigns default to
    ``"<callsign> <n>"``; a blank label to ``"<callsign> flight of <n>"``.
    """
    count = len(elements)
    if count < FORMATION_MIN_ELEMENTS:
        return None
    if count > FORMATION_MAX_ELEMENTS:
        raise FdmsValidationError(
            f"a formation allows at most {FORMATION_MAX_ELEMENTS} elements, got {count}",
            field="elements",
            value=count,
        )

    base = callsign.strip().upper()
    raw_elements: list[dict[str, Any]] = []
    for position, element in enumerate(elements, start=1):
        wire = element.to_wire() if isinstance(element, FormationElement) else to_wire_patch(FormationElement, element)
        if not str(wire.get("callsign") or "").strip():
            wire["callsign"] = f"{base} {position}"
        raw_elements.append(wire)

    try:
        return Formation.model_validate(
            {
                "label": (label or "").strip() or f"{base} flight of {count}",
                "elements": raw_elements,
            }
        )
    except ValidationError as exc:
        raise validation_error_from(exc) from exc


def cascade_master_status(formation: Formation, new_status: MovementStatus | str) -> Formation:
    """Carry a terminal master status down to the live elements.

    Only PLANNED/ACTIVE elements follow the master; an element that is
    already COMPLETED or CANCELLED keeps its state. Non-terminal master
    statuses do not cascade.
    """
    status = MovementStatus(new_status)
    if status not in _CASCADE_STATUSES:
        return formation
    elements = [
        el.model_copy(update={"status": status}) if el.status.is_live else el for el in formation.elements
    ]
    return _rebuild(formation, elements)


def _fresh_lifecycle(formation: Formation) -> Formation:
    elements = [
        {
            "callsign": el.callsign,
            "reg": el.reg,
            "type": el.type,
            "wtc": el.wtc,
            "status": MovementStatus.PLANNED,
            "depAd": el.dep_ad,
            "arrAd": el.arr_ad,
            "depActual": "",
            "arrActual": "",
        }
        for el in formation.elements
    ]
    return Formation.model_validate({"label": formation.label, "elements": elements})


def produce_arrival_formation(formation: Formation) -> Formation:
    """Formation for the ARR strip produced from a formation DEP.

    Identity (label, callsigns, registrations, types, categories, aerodrome
    overrides) carries over. Every element starts again at PLANNED with no
    actual times, whatever state it reached on the departure strip, and
    the WTC ceiling starts afresh.
    """
    return _fresh_lifecycle(formation)


def duplicate_formation(formation: Formation) -> Formation:
    """Formation for a duplicated strip; same reset as produce-arrival."""
    return _fresh_lifecycle(formation)


def set_element_aerodrome(formation: Formation, index: int, field: str, value: str | None) -> Formation:
    """Set or clear an element's ``depAd``/``arrAd`` override.

    An empty value restores inheritance from the master strip. A non-empty
    value must be a 4-character aerodrome code.
    """
    wire_field = _wire_field(field)
    if wire_field not in ELEMENT_AERODROME_FIELDS:
        raise FdmsValidationError(f"{field!r} is not an element aerodrome field", field=field)
    try:
        code = parse_element_aerodrome(value)
    except ValueError as exc:
        raise FdmsValidationError(str(exc), field=f"elements.{index}.{wire_field}", value=value) from exc

    _element_at(formation, index)
    elements = list(formation.elements)
    elements[index] = elements[index].model_copy(update={_MASTER_AERODROME_FIELD[wire_field]: code})
    return _rebuild(formation, elements)


def resolve_element_aerodrome(element: FormationElement, master: Movement, field: str) -> str:
    """Effective aerodrome for an element: its override, else the master's."""
    wire_field = _wire_field(field)
    if wire_field not in ELEMENT_AERODROME_FIELDS:
        raise FdmsValidationError(f"{field!r} is not an element aerodrome field", field=field)
    name = _MASTER_AERODROME_FIELD[wire_field]
    own: str = getattr(element, name)
    return own or getattr(master, name)


def update_element(formation: Formation, index: int, patch: Mapping[str, Any]) -> Formation:
    """Edit one element.

    Writing an inheritable field (``depActual``/``arrActual``) detaches
    that field from the master for this element only.
    """
    current = _element_at(formation, index)
    wire_patch = to_wire_patch(FormationElement, patch)
    wire_patch.pop("overrides", None)

    overrides = list(current.overrides)
    for field in INHERITABLE_ELEMENT_FIELDS:
        if field in wire_patch and field not in overrides:
            overrides.append(field)

    merged = {**current.to_wire(), **wire_patch, "overrides": overrides}
    elements: list[FormationElement | Mapping[str, Any]] = list(formation.elements)
    elements[index] = merged
    return _rebuild(formation, elements)


def propagate_master_fields(formation: Formation, changes: Mapping[str, Any]) -> Formation:
    """Copy master edits to inheritable fields into elements that still inherit.

    *changes* maps field names (wire or snake_case) to the master's new
    values; fields that elements do not inherit are ignored.
    """
    inherited = {
        _wire_field(name): value for name, value in changes.items() if _wire_field(name) in INHERITABLE_ELEMENT_FIELDS
    }
    if not inherited:
        return formation

    elements: list[FormationElement | Mapping[str, Any]] = []
    for el in formation.elements:
        updates = {field: value for field, value in inherited.items() if field not in el.overrides}
        elements.append({**el.to_wire(), **updates} if updates else el)
    return _rebuild(formation, elements)
