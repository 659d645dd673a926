"""
Pulse Pal Device Driver

Python API for programming Pulse Pal output channels over USB serial.
One ``set_*`` method per channel parameter, each performing a blocking
write and waiting for the firmware's confirm byte.

Protocol details:
    - Baud: 115200, 8N1
    - Messages start with the op-menu byte 213
    - Handshake 72 → reply 75 + uint32 firmware version
    - Program parameter 74 <code> <channel> <value> → reply 1
"""

from __future__ import annotations

import logging

from .constants import DEFAULT_BAUD, DEFAULT_PORT, DEFAULT_TIMEOUT
from .exceptions import ConnectionError, PulsePalError
from .protocol import (
    CustomTrainId,
    CustomTrainTarget,
    ParameterCode,
    PulsePalProtocol,
    encode_byte,
    encode_time,
    encode_voltage,
)
from .transport import SerialTransport

logger = logging.getLogger(__name__)


class PulsePal:
    """Interface for a Pulse Pal pulse generator.

    Use as a context manager for automatic connection handling::

        with PulsePal('/dev/ttyACM0') as pulse_pal:
            pulse_pal.set_phase1_voltage(OutputChannel.CHANNEL_1, 5.0)
    """

    def __init__(
        self,
        port: str = DEFAULT_PORT,
        baud: int = DEFAULT_BAUD,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.port = port
        self._tx = SerialTransport(port, baud, timeout)
        self._p = PulsePalProtocol(self._tx)
        self.firmware_version: int | None = None

    # -- Context manager ----------------------------------------------------

    def __enter__(self) -> PulsePal:
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # -- Connection ---------------------------------------------------------

    def open(self) -> None:
        """Open the serial port and perform the handshake.

        Raises:
            ConnectionError: If the port cannot be opened or the device
                does not answer the handshake.  The port is closed again
                before raising.
        """
        self._tx.open()
        try:
            self.firmware_version = self._p.handshake()
        except PulsePalError as exc:
            self._tx.close()
            if isinstance(exc, ConnectionError):
                raise
            raise ConnectionError(f"Pulse Pal on {self.port} not responding: {exc}") from exc
        logger.info("Connected to Pulse Pal on %s (firmware %d)", self.port, self.firmware_version)

    def close(self) -> None:
        """End the session and close the serial port (safe to call multiple times)."""
        if not self._tx.is_open:
            return
        try:
            self._p.end_session()
        finally:
            self._tx.close()

    @property
    def is_open(self) -> bool:
        """Return True if the serial port is open."""
        return self._tx.is_open

    # -- Pulse voltage ------------------------------------------------------

    def set_biphasic(self, channel: int, biphasic: bool) -> None:
        """Select biphasic (``True``) or monophasic (``False``) pulses."""
        self._p.program_param(channel, ParameterCode.BIPHASIC, encode_byte(biphasic))

    def set_phase1_voltage(self, channel: int, volts: float) -> None:
        self._p.program_param(channel, ParameterCode.PHASE1_VOLTAGE, encode_voltage(volts))

    def set_phase2_voltage(self, channel: int, volts: float) -> None:
        self._p.program_param(channel, ParameterCode.PHASE2_VOLTAGE, encode_voltage(volts))

    def set_resting_voltage(self, channel: int, volts: float) -> None:
        """Set the voltage the channel holds between pulses."""
        self._p.program_param(channel, ParameterCode.RESTING_VOLTAGE, encode_voltage(volts))

    # -- Pulse timing -------------------------------------------------------

    def set_phase1_duration(self, channel: int, seconds: float) -> None:
        self._p.program_param(channel, ParameterCode.PHASE1_DURATION, encode_time(seconds))

    def set_inter_phase_interval(self, channel: int, seconds: float) -> None:
        self._p.program_param(channel, ParameterCode.INTER_PHASE_INTERVAL, encode_time(seconds))

    def set_phase2_duration(self, channel: int, seconds: float) -> None:
        self._p.program_param(channel, ParameterCode.PHASE2_DURATION, encode_time(seconds))

    def set_inter_pulse_interval(self, channel: int, seconds: float) -> None:
        self._p.program_param(channel, ParameterCode.INTER_PULSE_INTERVAL, encode_time(seconds))

    def set_burst_duration(self, channel: int, seconds: float) -> None:
        self._p.program_param(channel, ParameterCode.BURST_DURATION, encode_time(seconds))

    def set_inter_burst_interval(self, channel: int, seconds: float) -> None:
        self._p.program_param(channel, ParameterCode.INTER_BURST_INTERVAL, encode_time(seconds))

    def set_pulse_train_duration(self, channel: int, seconds: float) -> None:
        self._p.program_param(channel, ParameterCode.PULSE_TRAIN_DURATION, encode_time(seconds))

    def set_pulse_train_delay(self, channel: int, seconds: float) -> None:
        """Set the delay between a trigger and the start of the pulse train."""
        self._p.program_param(channel, ParameterCode.PULSE_TRAIN_DELAY, encode_time(seconds))

    # -- Triggers -----------------------------------------------------------

    def set_trigger_on_channel1(self, channel: int, enabled: bool) -> None:
        """Allow trigger input 1 to start this output channel."""
        self._p.program_param(channel, ParameterCode.TRIGGER_ON_CHANNEL1, encode_byte(enabled))

    def set_trigger_on_channel2(self, channel: int, enabled: bool) -> None:
        """Allow trigger input 2 to start this output channel."""
        self._p.program_param(channel, ParameterCode.TRIGGER_ON_CHANNEL2, encode_byte(enabled))

    # -- Custom trains ------------------------------------------------------

    def set_custom_train_identity(self, channel: int, train: CustomTrainId) -> None:
        self._p.program_param(
            channel, ParameterCode.CUSTOM_TRAIN_IDENTITY, encode_byte(CustomTrainId(train))
        )

    def set_custom_train_target(self, channel: int, target: CustomTrainTarget) -> None:
        self._p.program_param(
            channel, ParameterCode.CUSTOM_TRAIN_TARGET, encode_byte(CustomTrainTarget(target))
        )

    def set_custom_train_loop(self, channel: int, loop: bool) -> None:
        """Select whether the channel loops its custom pulse train."""
        self._p.program_param(channel, ParameterCode.CUSTOM_TRAIN_LOOP, encode_byte(loop))


# ---------------------------------------------------------------------------
# Convenience factory
# ---------------------------------------------------------------------------


def get_pulse_pal(port: str = DEFAULT_PORT) -> PulsePal:
    """Return a driver instance (use as a context manager).

    Example::

        with get_pulse_pal('/dev/ttyACM0') as pulse_pal:
            pulse_pal.set_biphasic(1, True)
    """
    return PulsePal(port)
