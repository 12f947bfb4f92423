"""Custom exception hierarchy for fdms."""

from __future__ import annotations


class FdmsError(Exception):
    """Base exception for all fdms errors."""


class FdmsConfigError(FdmsError):
    """Invalid or missing configuration."""


class FdmsValidationError(FdmsError):
    """Malformed field input rejected at a store boundary.

    The record the input was aimed at is left untouched; ``reason`` is a
    human-readable explanation suitable for showing to an operator.
    """

    def __init__(
        self,
        reason: str,
        *,
        field: str = "",
        value: object = None,
    ) -> None:
        self.reason = reason
        self.field = field
        self.value = value
        message = f"{field}: {reason}" if field else reason
        super().__init__(message)


class FdmsTransitionError(FdmsValidationError):
    """A status change that the movement state machine does not allow."""


class FdmsPersistenceError(FdmsError):
    """Writing to or reading from the persistent backend failed.

    Stores catch this at their boundary; it never invalidates in-memory state.
    """

    def __init__(self, message: str, *, key: str = "") -> None:
        self.key = key
        super().__init__(message)


class FdmsStorageQuotaError(FdmsPersistenceError):
    """The backend refused a write because it would exceed its quota."""
