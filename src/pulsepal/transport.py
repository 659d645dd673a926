"""
Serial transport layer for the Pulse Pal.

Handles the physical serial connection and raw byte I/O.  Knows nothing
about what the bytes mean — that's :mod:`protocol`'s job.

Typical usage (via :class:`~pulsepal.driver.PulsePal`)::

    transport = SerialTransport("/dev/ttyACM0")
    transport.open()
    transport.write(bytes([213, 72]))
    reply = transport.read(5)
    transport.close()
"""

from __future__ import annotations

import logging

import serial

from .constants import DEFAULT_BAUD, DEFAULT_PORT, DEFAULT_TIMEOUT
from .exceptions import ConnectionError, TimeoutError

logger = logging.getLogger(__name__)


class SerialTransport:
    """Manages a serial connection to a Pulse Pal.

    Args:
        port: Serial port path (e.g. ``/dev/ttyACM0`` or ``COM3``).
        baudrate: Baud rate (default 115200).
        timeout: Per-read timeout in seconds.  Also serves as the upper
            bound on how long :meth:`read` will wait for a reply.
    """

    def __init__(
        self,
        port: str = DEFAULT_PORT,
        baudrate: int = DEFAULT_BAUD,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.port = port
        self.baudrate = baudrate
        self.timeout = timeout
        self._ser: serial.Serial | None = None

    # -- Lifecycle ----------------------------------------------------------

    def open(self) -> None:
        """Open the serial port.

        Raises:
            ConnectionError: If the port cannot be opened.
        """
        logger.info("Opening serial port %s at %d baud", self.port, self.baudrate)
        try:
            self._ser = serial.Serial(
                port=self.port,
                baudrate=self.baudrate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=self.timeout,
            )
        except serial.SerialException as exc:
            raise ConnectionError(f"Cannot open {self.port}: {exc}") from exc

    def close(self) -> None:
        """Close the serial port (safe to call multiple times)."""
        if self._ser and self._ser.is_open:
            self._ser.close()
            logger.info("Serial port %s closed", self.port)

    @property
    def is_open(self) -> bool:
        """Return ``True`` if the serial port is currently open."""
        return self._ser is not None and self._ser.is_open

    # -- I/O ----------------------------------------------------------------

    def write(self, data: bytes) -> None:
        """Discard stale input, then write *data* and flush it to the device.

        Raises:
            ConnectionError: If the port is not open.
        """
        ser = self._require_open()
        logger.debug("TX: %s", data.hex(" "))
        ser.reset_input_buffer()
        ser.write(data)
        ser.flush()

    def read(self, size: int) -> bytes:
        """Read exactly *size* bytes.

        Raises:
            ConnectionError: If the port is not open.
            TimeoutError: If fewer than *size* bytes arrive before the
                serial timeout expires.
        """
        ser = self._require_open()
        data = ser.read(size)
        logger.debug("RX: %s", data.hex(" "))
        if len(data) < size:
            raise TimeoutError(
                f"Expected {size} byte(s) from {self.port}, got {len(data)}"
            )
        return data

    # -- Internal -----------------------------------------------------------

    def _require_open(self) -> serial.Serial:
        """Return the open serial port or raise."""
        if not self.is_open:
            raise ConnectionError("Serial port not open — call open() first.")
        assert self._ser is not None  # for type-checker
        return self._ser
