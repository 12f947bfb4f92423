"""Patch helpers shared by the record stores.

Stores work on the persisted (camelCase) representation of a record: the
patch is translated to wire keys, merged into the current wire dict, the
result is validated back into a model and dumped again. Diffing the two
dumps gives the field-level change set.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel

from fdms.models.movement import FieldChange


def _nested_model(model_cls: type[BaseModel], name: str) -> type[BaseModel] | None:
    info = model_cls.model_fields.get(name)
    if info is None:
        return None
    annotation = info.annotation
    if isinstance(annotation, type) and issubclass(annotation, BaseModel):
        return annotation
    return None


def to_wire_patch(model_cls: type[BaseModel], patch: Mapping[str, Any]) -> dict[str, Any]:
    """Translate field names in *patch* to their persisted aliases.

    Keys that are already aliases (or unknown extras) pass through. Nested
    mappings for plain sub-model fields are translated recursively.
    """
    by_name = model_cls.model_fields
    by_alias = {info.alias: name for name, info in by_name.items() if info.alias}

    wire: dict[str, Any] = {}
    for key, value in patch.items():
        if key in by_name:
            name = key
            wire_key = by_name[key].alias or key
        else:
            name = by_alias.get(key, key)
            wire_key = key
        nested = _nested_model(model_cls, name)
        if nested is not None and isinstance(value, Mapping):
            value = to_wire_patch(nested, value)
        wire[wire_key] = value
    return wire


def deep_merge(target: Mapping[str, Any], patch: Mapping[str, Any]) -> dict[str, Any]:
    """Return *target* with *patch* merged in.

    Nested dicts are merged key by key; every other value in the patch
    overwrites, including ``None``.
    """
    merged = copy.deepcopy(dict(target))
    for key, value in patch.items():
        existing = merged.get(key)
        if isinstance(value, Mapping) and isinstance(existing, dict):
            merged[key] = deep_merge(existing, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def diff_fields(
    before: Mapping[str, Any],
    after: Mapping[str, Any],
    *,
    ignore: frozenset[str] = frozenset(),
) -> dict[str, FieldChange]:
    """Top-level fields whose persisted value differs between two dumps."""
    changes: dict[str, FieldChange] = {}
    for key in sorted(set(before) | set(after)):
        if key in ignore:
            continue
        old = before.get(key)
        new = after.get(key)
        if old != new:
            changes[key] = FieldChange(old=old, new=new)
    return changes
