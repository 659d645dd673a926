"""
Channel parameter bundle and its validation.

Limits live in a single table of ``(field, min, max, increment)`` rows that
one generic routine walks, so adding a parameter is a one-line change.
"""

from __future__ import annotations

import math
import numbers
from dataclasses import dataclass, fields
from enum import IntEnum

from .constants import (
    MAX_TIME_PERIOD,
    MAX_VOLTAGE,
    MIN_TIME_PERIOD,
    MIN_TRAIN_DELAY,
    MIN_VOLTAGE,
    TIME_INCREMENT,
    VOLTAGE_INCREMENT,
)
from .exceptions import ValidationError
from .protocol import CustomTrainId, CustomTrainTarget, OutputChannel


@dataclass(frozen=True)
class ChannelParameters:
    """Immutable configuration for one Pulse Pal output channel.

    Voltages are in volts, durations and intervals in seconds.  Values are
    not checked on construction; call :meth:`validate` (``apply`` does).
    """

    channel: OutputChannel = OutputChannel.CHANNEL_1
    biphasic: bool = False
    phase1_voltage: float = 5.0
    phase2_voltage: float = -5.0
    resting_voltage: float = 0.0
    phase1_duration: float = 0.001
    inter_phase_interval: float = 0.001
    phase2_duration: float = 0.001
    inter_pulse_interval: float = 0.01
    burst_duration: float = 0.1
    inter_burst_interval: float = 0.1
    pulse_train_duration: float = 1.0
    pulse_train_delay: float = 0.0
    custom_train_identity: CustomTrainId = CustomTrainId.NONE
    custom_train_target: CustomTrainTarget = CustomTrainTarget.TIME
    custom_train_loop: bool = False
    trigger_on_channel1: bool = True
    trigger_on_channel2: bool = True

    def validate(self) -> None:
        """Check every field against its declared type, range and precision.

        Raises:
            ValidationError: Naming the first offending field.
        """
        validate_parameters(self)

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


# ---------------------------------------------------------------------------
# Limit table
# ---------------------------------------------------------------------------

# (field, minimum, maximum, increment)
NUMERIC_LIMITS: tuple[tuple[str, float, float, float], ...] = (
    ("phase1_voltage", MIN_VOLTAGE, MAX_VOLTAGE, VOLTAGE_INCREMENT),
    ("phase2_voltage", MIN_VOLTAGE, MAX_VOLTAGE, VOLTAGE_INCREMENT),
    ("resting_voltage", MIN_VOLTAGE, MAX_VOLTAGE, VOLTAGE_INCREMENT),
    ("phase1_duration", MIN_TIME_PERIOD, MAX_TIME_PERIOD, TIME_INCREMENT),
    ("inter_phase_interval", MIN_TIME_PERIOD, MAX_TIME_PERIOD, TIME_INCREMENT),
    ("phase2_duration", MIN_TIME_PERIOD, MAX_TIME_PERIOD, TIME_INCREMENT),
    ("inter_pulse_interval", MIN_TIME_PERIOD, MAX_TIME_PERIOD, TIME_INCREMENT),
    ("burst_duration", MIN_TIME_PERIOD, MAX_TIME_PERIOD, TIME_INCREMENT),
    ("inter_burst_interval", MIN_TIME_PERIOD, MAX_TIME_PERIOD, TIME_INCREMENT),
    ("pulse_train_duration", MIN_TIME_PERIOD, MAX_TIME_PERIOD, TIME_INCREMENT),
    ("pulse_train_delay", MIN_TRAIN_DELAY, MAX_TIME_PERIOD, TIME_INCREMENT),
)

FLAG_FIELDS: tuple[str, ...] = (
    "biphasic",
    "custom_train_loop",
    "trigger_on_channel1",
    "trigger_on_channel2",
)

ENUM_FIELDS: tuple[tuple[str, type[IntEnum]], ...] = (
    ("channel", OutputChannel),
    ("custom_train_identity", CustomTrainId),
    ("custom_train_target", CustomTrainTarget),
)


def display_name(field: str) -> str:
    """Return the device-facing name of *field*, e.g. ``Phase1Voltage``."""
    return "".join(part.capitalize() for part in field.split("_"))


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _on_grid(value: float, increment: float) -> bool:
    steps = round(value / increment)
    return math.isclose(steps * increment, value, rel_tol=0.0, abs_tol=increment * 1e-3)


def validate_value(field: str, value, minimum: float, maximum: float, increment: float) -> None:
    """Validate one bounded real *value* for *field*."""
    label = display_name(field)
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise ValidationError(f"{label} must be a number, got {value!r}", field=field)
    if not (minimum <= value <= maximum):
        raise ValidationError(
            f"{label} ({field}) must be {minimum}-{maximum}, got {value}", field=field
        )
    if not _on_grid(value, increment):
        raise ValidationError(
            f"{label} ({field}) must be a multiple of {increment}, got {value}", field=field
        )


def validate_parameters(params: ChannelParameters) -> None:
    """Check every field of *params*; raise on the first offending one.

    Raises:
        ValidationError: With ``field`` set to the offending attribute name.
    """
    for name, enum_type in ENUM_FIELDS:
        value = getattr(params, name)
        try:
            enum_type(value)
        except ValueError as err:
            raise ValidationError(
                f"{display_name(name)} must be one of {[m.name for m in enum_type]}, "
                f"got {value!r}",
                field=name,
            ) from err

    for name in FLAG_FIELDS:
        value = getattr(params, name)
        if not isinstance(value, bool):
            raise ValidationError(
                f"{display_name(name)} must be a boolean, got {value!r}", field=name
            )

    for name, minimum, maximum, increment in NUMERIC_LIMITS:
        validate_value(name, getattr(params, name), minimum, maximum, increment)
