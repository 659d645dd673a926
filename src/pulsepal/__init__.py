"""Pulse Pal channel configuration over a shared serial connection"""

from .configurator import ConfigureOutputChannel, apply
from .constants import MAX_TIME_PERIOD, MAX_VOLTAGE, MIN_TIME_PERIOD, MIN_VOLTAGE
from .driver import PulsePal, get_pulse_pal
from .exceptions import (
    ConnectionError,
    DeviceCommandError,
    LeaseError,
    OperationCancelled,
    PulsePalError,
    TimeoutError,
    ValidationError,
)
from .parameters import ChannelParameters
from .protocol import CustomTrainId, CustomTrainTarget, OutputChannel
from .registry import ConnectionLease, ConnectionRegistry, default_registry

__all__ = [
    "ChannelParameters",
    "ConfigureOutputChannel",
    "ConnectionError",
    "ConnectionLease",
    "ConnectionRegistry",
    "CustomTrainId",
    "CustomTrainTarget",
    "DeviceCommandError",
    "LeaseError",
    "MAX_TIME_PERIOD",
    "MAX_VOLTAGE",
    "MIN_TIME_PERIOD",
    "MIN_VOLTAGE",
    "OperationCancelled",
    "OutputChannel",
    "PulsePal",
    "PulsePalError",
    "TimeoutError",
    "ValidationError",
    "apply",
    "default_registry",
    "get_pulse_pal",
]
__version__ = "0.1.0"
