"""
Pulse Pal serial protocol: parameter codes, value encoding, and ack checking.

This module sits between the transport (raw serial I/O) and the driver
(per-parameter API).  It knows how to:

* encode voltages and time periods into the firmware's integer units,
* build properly framed opcode messages,
* check the confirm byte returned after each programmed parameter,
* perform the connection handshake and read the firmware version.

It does **not** own the serial port — that belongs to
:class:`~pulsepal.transport.SerialTransport`.
"""

from __future__ import annotations

import logging
import math
import struct
from enum import IntEnum

from .constants import (
    CYCLE_FREQUENCY_HZ,
    DAC_MAX,
    HANDSHAKE_REPLY,
    MAX_CHANNEL,
    MAX_TIME_PERIOD,
    MAX_VOLTAGE,
    MIN_CHANNEL,
    MIN_VOLTAGE,
    OP_END_SESSION,
    OP_HANDSHAKE,
    OP_MENU_BYTE,
    OP_PROGRAM_PARAM,
    PROGRAM_CONFIRM,
)
from .exceptions import ConnectionError, DeviceCommandError, ValidationError
from .transport import SerialTransport

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class OutputChannel(IntEnum):
    """Pulse output channels."""

    CHANNEL_1 = 1
    CHANNEL_2 = 2
    CHANNEL_3 = 3
    CHANNEL_4 = 4


class CustomTrainId(IntEnum):
    """Custom pulse train assigned to an output channel."""

    NONE = 0
    CUSTOM_TRAIN_1 = 1
    CUSTOM_TRAIN_2 = 2


class CustomTrainTarget(IntEnum):
    """Interpretation of the times stored in a custom pulse train."""

    TIME = 0
    PULSE_WIDTH = 1


class ParameterCode(IntEnum):
    """Firmware parameter codes, in the order a channel is programmed."""

    BIPHASIC = 1
    PHASE1_VOLTAGE = 2
    PHASE2_VOLTAGE = 3
    PHASE1_DURATION = 4
    INTER_PHASE_INTERVAL = 5
    PHASE2_DURATION = 6
    INTER_PULSE_INTERVAL = 7
    BURST_DURATION = 8
    INTER_BURST_INTERVAL = 9
    PULSE_TRAIN_DURATION = 10
    PULSE_TRAIN_DELAY = 11
    TRIGGER_ON_CHANNEL1 = 12
    TRIGGER_ON_CHANNEL2 = 13
    CUSTOM_TRAIN_IDENTITY = 14
    CUSTOM_TRAIN_TARGET = 15
    CUSTOM_TRAIN_LOOP = 16
    RESTING_VOLTAGE = 17


# ---------------------------------------------------------------------------
# Encoding helpers
# ---------------------------------------------------------------------------


def _validate_channel(channel: int) -> None:
    if not (MIN_CHANNEL <= channel <= MAX_CHANNEL):
        raise ValidationError(f"Channel must be {MIN_CHANNEL}-{MAX_CHANNEL}, got {channel}")


def encode_voltage(volts: float) -> bytes:
    """Encode *volts* as a little-endian uint16 DAC count.

    The DAC spans -10 V (count 0) to +10 V (count 65535).
    """
    if not (MIN_VOLTAGE <= volts <= MAX_VOLTAGE):
        raise ValidationError(f"Voltage must be {MIN_VOLTAGE}-{MAX_VOLTAGE} V, got {volts}")
    count = math.ceil((volts - MIN_VOLTAGE) / (MAX_VOLTAGE - MIN_VOLTAGE) * DAC_MAX)
    return struct.pack("<H", min(count, DAC_MAX))


def encode_time(seconds: float) -> bytes:
    """Encode *seconds* as a little-endian uint32 count of firmware clock cycles."""
    if not (0 <= seconds <= MAX_TIME_PERIOD):
        raise ValidationError(f"Time period must be 0-{MAX_TIME_PERIOD} s, got {seconds}")
    return struct.pack("<I", round(seconds * CYCLE_FREQUENCY_HZ))


def encode_byte(value: int) -> bytes:
    """Encode a flag or enum member as a single byte."""
    return struct.pack("<B", int(value))


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class PulsePalProtocol:
    """Builds opcode messages, sends them via a transport, and checks replies.

    Args:
        transport: An open :class:`~pulsepal.transport.SerialTransport`.
    """

    def __init__(self, transport: SerialTransport) -> None:
        self._tx = transport

    def handshake(self) -> int:
        """Confirm the device is a Pulse Pal and return its firmware version.

        Raises:
            ConnectionError: If the device answers with an unexpected byte.
            TimeoutError: If the device does not answer.
        """
        self._tx.write(bytes([OP_MENU_BYTE, OP_HANDSHAKE]))
        reply = self._tx.read(1)[0]
        if reply != HANDSHAKE_REPLY:
            raise ConnectionError(
                f"Unexpected handshake reply {reply} from {self._tx.port}; "
                f"expected {HANDSHAKE_REPLY}"
            )
        (firmware,) = struct.unpack("<I", self._tx.read(4))
        logger.debug("Handshake OK, firmware version %d", firmware)
        return firmware

    def program_param(self, channel: int, code: ParameterCode, payload: bytes) -> None:
        """Program one parameter of *channel* and wait for the confirm byte.

        Raises:
            DeviceCommandError: If the device does not confirm the command.
        """
        _validate_channel(channel)
        self._tx.write(bytes([OP_MENU_BYTE, OP_PROGRAM_PARAM, int(code), int(channel)]) + payload)
        confirm = self._tx.read(1)[0]
        if confirm != PROGRAM_CONFIRM:
            raise DeviceCommandError(
                f"Device rejected {code.name} on channel {int(channel)} (reply {confirm})"
            )

    def end_session(self) -> None:
        """Tell the device the host is disconnecting."""
        # Not acknowledged by the firmware
        self._tx.write(bytes([OP_MENU_BYTE, OP_END_SESSION]))
