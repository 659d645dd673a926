"""Shared pytest fixtures for Pulse Pal tests."""

from __future__ import annotations

import struct
import threading
import time
from dataclasses import dataclass
from unittest.mock import patch

import pytest

from pulsepal import PulsePal
from pulsepal.exceptions import DeviceCommandError
from pulsepal.protocol import PulsePalProtocol
from pulsepal.registry import ConnectionRegistry
from pulsepal.transport import SerialTransport


class FakeSerial:
    """Lightweight stand-in for ``serial.Serial``.

    Implements the subset of the pyserial API used by
    :class:`~pulsepal.transport.SerialTransport`: ``write``, ``read``,
    ``in_waiting``, ``flush``, ``reset_input_buffer``, ``close`` and
    ``is_open``.

    Each :meth:`write` loads the reply the firmware would send: the
    handshake reply plus firmware version for ``213 72``, the confirm byte
    for ``213 74``, nothing otherwise.  Call :meth:`set_response` to stage
    a different reply for the **next** write only.
    """

    def __init__(self, firmware: int = 20) -> None:
        self.is_open: bool = True
        self.written: list[bytes] = []
        self.firmware = firmware
        self._response: bytes = b""
        self._next: bytes | None = None  # staged override for next write

    # -- Helpers for tests --------------------------------------------------

    def set_response(self, data: bytes) -> None:
        """Stage a reply for the **next** write."""
        self._next = data

    # -- pyserial interface -------------------------------------------------

    def write(self, data: bytes) -> int:
        data = bytes(data)
        self.written.append(data)
        if self._next is not None:
            self._response = self._next
            self._next = None
        elif data[:2] == bytes([213, 72]):
            self._response = bytes([75]) + struct.pack("<I", self.firmware)
        elif data[:2] == bytes([213, 74]):
            self._response = b"\x01"
        else:
            self._response = b""
        return len(data)

    @property
    def in_waiting(self) -> int:
        return len(self._response)

    def read(self, size: int = 1) -> bytes:
        data = self._response[:size]
        self._response = self._response[size:]
        return data

    def flush(self) -> None:
        pass

    def reset_input_buffer(self) -> None:
        pass  # no-op — we don't want to discard the staged response

    def close(self) -> None:
        self.is_open = False


# ---------------------------------------------------------------------------
# Instrumented Device Driver
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Call:
    """One set-command seen by a :class:`RecordingDriver`."""

    timestamp: float
    port: str
    method: str
    channel: int
    value: object


class RecordingDriver:
    """Device Driver double that records every ``set_*`` call with a timestamp.

    Args:
        port: Port identifier it was created for.
        log: List shared with other drivers, so ordering across ports can
            be checked.
        fail_on: 1-based index of the command that raises
            :class:`DeviceCommandError` (``None`` = never).
        open_error: Exception raised by :meth:`open`, if any.
        open_delay: Seconds :meth:`open` sleeps, to widen race windows.
        command_delay: Seconds each command sleeps before it is recorded.
        on_command: Callback ``(method, channel, value)`` run before recording.
        on_open: Callback run at the start of :meth:`open`, e.g. to block it.
        on_close: Callback run at the start of :meth:`close`.
    """

    def __init__(
        self,
        port: str,
        log: list[Call],
        fail_on: int | None = None,
        open_error: Exception | None = None,
        open_delay: float = 0.0,
        command_delay: float = 0.0,
        on_command=None,
        on_open=None,
        on_close=None,
    ) -> None:
        self.port = port
        self.log = log
        self.calls: list[Call] = []
        self.fail_on = fail_on
        self.open_error = open_error
        self.open_delay = open_delay
        self.command_delay = command_delay
        self.on_command = on_command
        self.on_open = on_open
        self.on_close = on_close
        self.open_count = 0
        self.close_count = 0
        self._sent = 0

    def open(self) -> None:
        if self.on_open is not None:
            self.on_open()
        if self.open_delay:
            time.sleep(self.open_delay)
        if self.open_error is not None:
            raise self.open_error
        self.open_count += 1

    def close(self) -> None:
        if self.on_close is not None:
            self.on_close()
        self.close_count += 1

    @property
    def is_open(self) -> bool:
        return self.open_count > self.close_count

    def __getattr__(self, name: str):
        if not name.startswith("set_"):
            raise AttributeError(name)

        def command(channel, value):
            self._sent += 1
            if self.on_command is not None:
                self.on_command(name, channel, value)
            if self.fail_on == self._sent:
                raise DeviceCommandError("Simulated rejection")
            if self.command_delay:
                time.sleep(self.command_delay)
            call = Call(time.monotonic(), self.port, name, int(channel), value)
            self.calls.append(call)
            self.log.append(call)

        return command


class DriverFactory:
    """Creates :class:`RecordingDriver` instances with per-port options."""

    def __init__(self) -> None:
        self.created: list[RecordingDriver] = []
        self.log: list[Call] = []
        self._options: dict[str, dict] = {}
        self._lock = threading.Lock()

    def configure(self, port: str, **options) -> None:
        self._options[port] = options

    def __call__(self, port: str) -> RecordingDriver:
        driver = RecordingDriver(port, self.log, **self._options.get(port, {}))
        with self._lock:
            self.created.append(driver)
        return driver

    def for_port(self, port: str) -> list[RecordingDriver]:
        return [d for d in self.created if d.port == port]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def fake_serial() -> FakeSerial:
    """Return a fresh ``FakeSerial`` instance."""
    return FakeSerial()


@pytest.fixture()
def transport(fake_serial: FakeSerial) -> SerialTransport:
    """Return a ``SerialTransport`` wired to a fake serial port."""
    with patch("pulsepal.transport.serial.Serial", return_value=fake_serial):
        tx = SerialTransport("/dev/fake")
        tx.open()
        return tx


@pytest.fixture()
def protocol(transport: SerialTransport) -> PulsePalProtocol:
    """Return a ``PulsePalProtocol`` wired to a fake transport."""
    return PulsePalProtocol(transport)


@pytest.fixture()
def pulse_pal(fake_serial: FakeSerial) -> PulsePal:
    """Return an open ``PulsePal`` wired to a fake serial port."""
    with patch("pulsepal.transport.serial.Serial", return_value=fake_serial):
        device = PulsePal("/dev/fake")
        device.open()
        # Reset so tests don't see the handshake
        fake_serial.written.clear()
        return device


@pytest.fixture()
def driver_factory() -> DriverFactory:
    return DriverFactory()


@pytest.fixture()
def registry(driver_factory: DriverFactory) -> ConnectionRegistry:
    """Return a private registry whose connections use ``RecordingDriver``."""
    reg = ConnectionRegistry(driver_factory)
    yield reg
    reg.close_all()


