"""
Exception hierarchy for the Pulse Pal interface.

All exceptions inherit from :class:`PulsePalError` so callers can catch
broadly (``except PulsePalError``) or narrowly (``except ValidationError``).
"""

from __future__ import annotations


class PulsePalError(Exception):
    """Base exception for all Pulse Pal errors."""


class ConnectionError(PulsePalError):  # noqa: A001 – intentional shadow of builtin
    """Raised when the serial session cannot be opened or the device does not answer."""


class TimeoutError(PulsePalError):  # noqa: A001 – intentional shadow of builtin
    """Raised when the device does not respond within the expected window."""


class ValidationError(PulsePalError):
    """Raised when a parameter fails pre-send validation.

    Attributes:
        field: Name of the offending parameter, if the error concerns one.
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class DeviceCommandError(PulsePalError):
    """Raised when a set-command fails after the connection was established.

    Commands dispatched before the failing one are not rolled back, so the
    channel may be left partially updated.

    Attributes:
        field: Name of the parameter whose command failed, if known.
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class LeaseError(PulsePalError):
    """Raised when a connection lease is released twice or used after release."""


class OperationCancelled(PulsePalError):
    """Raised when a configuration request is cancelled before any command is sent."""
