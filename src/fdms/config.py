"""Library configuration for fdms."""

from __future__ import annotations

import dataclasses
import os
from pathlib import Path
from typing import Any

from fdms._constants import (
    BOOKINGS_STORAGE_KEY,
    DEFAULT_ACTOR,
    HOME_AERODROME,
    HOME_AERODROME_NAME,
    MOVEMENTS_STORAGE_KEY,
)
from fdms.exceptions import FdmsConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class FdmsConfig:
    """Library configuration.

    Parameters
    ----------
    storage_dir : Path or None
        Directory for the JSON file backend. ``None`` keeps everything in
        memory for the lifetime of the process.
    movements_key : str
        Storage key holding the movement envelope.
    bookings_key : str
        Storage key holding the booking envelope.
    actor : str
        Name recorded in change-log entries when a caller does not pass one.
    home_aerodrome : str
        ICAO code of the aerodrome the strips belong to. Used when a booking
        spins up its strip.
    home_aerodrome_name : str
        Display name for ``home_aerodrome``.
    reconcile_on_init : bool
        Run link reconciliation as part of client start-up. Disabling this
        breaks the guarantee that linkage is consistent before first render;
        it exists for tooling that wants to inspect raw persisted state.
    """

    storage_dir: Path | None = None
    movements_key: str = MOVEMENTS_STORAGE_KEY
    bookings_key: str = BOOKINGS_STORAGE_KEY
    actor: str = DEFAULT_ACTOR
    home_aerodrome: str = HOME_AERODROME
    home_aerodrome_name: str = HOME_AERODROME_NAME
    reconcile_on_init: bool = True

    def __post_init__(self) -> None:
        if not self.movements_key or not self.bookings_key:
            raise FdmsConfigError("storage keys must be non-empty")
        if self.movements_key == self.bookings_key:
            raise FdmsConfigError("movements and bookings must use distinct storage keys")
        if len(self.home_aerodrome) != 4:
            raise FdmsConfigError(f"home_aerodrome must be a 4-character code, got {self.home_aerodrome!r}")
        if not self.actor.strip():
            raise FdmsConfigError("actor must be non-empty")

    @classmethod
    def from_env(cls, **overrides: Any) -> FdmsConfig:
        """Create configuration from environment variables.

        Reads optional ``FDMS_*`` variables. Explicit keyword arguments
        override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        FdmsConfig
            Populated configuration.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "FDMS_MOVEMENTS_KEY": "movements_key",
            "FDMS_BOOKINGS_KEY": "bookings_key",
            "FDMS_ACTOR": "actor",
            "FDMS_HOME_AERODROME": "home_aerodrome",
            "FDMS_HOME_AERODROME_NAME": "home_aerodrome_name",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        storage_env = env.get("FDMS_STORAGE_DIR")
        if storage_env and "storage_dir" not in overrides:
            config_kwargs["storage_dir"] = Path(storage_env).expanduser()

        if "reconcile_on_init" not in overrides:
            config_kwargs["reconcile_on_init"] = _env_bool(env.get("FDMS_RECONCILE_ON_INIT"), True)

        storage_override = overrides.get("storage_dir")
        if isinstance(storage_override, str):
            overrides["storage_dir"] = Path(storage_override).expanduser()

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
