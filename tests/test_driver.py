"""
Test suite for the Pulse Pal Device Driver.

Organised by layer:

* **Transport** — serial I/O, timeouts, buffer hygiene
* **Protocol** — value encoding, message framing, confirm checking
* **Driver** — handshake, per-parameter setters, session lifecycle
* **Hardware** — integration tests against a real device (skipped by default)

Run unit tests::

    pytest

Run hardware integration tests::

    pytest -m hardware
"""

from __future__ import annotations

import struct
from unittest.mock import patch

import pytest

from pulsepal import (
    ConnectionError,
    CustomTrainId,
    CustomTrainTarget,
    DeviceCommandError,
    OutputChannel,
    PulsePal,
    TimeoutError,
    ValidationError,
    get_pulse_pal,
)
from pulsepal.constants import DEFAULT_PORT
from pulsepal.protocol import ParameterCode, encode_byte, encode_time, encode_voltage

from conftest import FakeSerial

# ── Constants ─────────────────────────────────────────────────────────────

HARDWARE_PORT = DEFAULT_PORT


def program_message(code: ParameterCode, channel: int, payload: bytes) -> bytes:
    return bytes([213, 74, int(code), channel]) + payload


# ══════════════════════════════════════════════════════════════════════════
#  Layer 1: Transport
# ══════════════════════════════════════════════════════════════════════════


class TestTransportConnection:
    """Opening, closing, and connection state."""

    def test_open_sets_is_open(self, transport):
        assert transport.is_open

    def test_close_clears_flag(self, transport):
        transport.close()
        assert not transport.is_open

    def test_close_twice_is_safe(self, transport):
        transport.close()
        transport.close()
        assert not transport.is_open

    def test_write_when_closed_raises(self, transport):
        transport.close()
        with pytest.raises(ConnectionError, match="not open"):
            transport.write(b"\x00")

    def test_open_failure_raises_connection_error(self):
        import serial as _serial

        with (
            patch(
                "pulsepal.transport.serial.Serial",
                side_effect=_serial.SerialException("port busy"),
            ),
            pytest.raises(ConnectionError, match="Cannot open"),
        ):
            from pulsepal.transport import SerialTransport

            SerialTransport("/dev/nonexistent").open()


class TestTransportIO:
    def test_write_sends_bytes_verbatim(self, transport, fake_serial):
        transport.write(bytes([213, 81]))
        assert fake_serial.written[-1] == bytes([213, 81])

    def test_read_returns_exact_size(self, transport, fake_serial):
        fake_serial.set_response(b"\x01\x02\x03")
        transport.write(b"\x00")
        assert transport.read(2) == b"\x01\x02"

    def test_short_read_raises_timeout(self, transport, fake_serial):
        fake_serial.set_response(b"")
        transport.write(b"\x00")
        with pytest.raises(TimeoutError, match="Expected 1 byte"):
            transport.read(1)


# ══════════════════════════════════════════════════════════════════════════
#  Layer 2: Protocol — Encoding
# ══════════════════════════════════════════════════════════════════════════


class TestVoltageEncoding:
    def test_minimum_is_zero_count(self):
        assert encode_voltage(-10.0) == struct.pack("<H", 0)

    def test_maximum_is_full_scale(self):
        assert encode_voltage(10.0) == struct.pack("<H", 65535)

    def test_zero_volts_is_mid_scale(self):
        assert encode_voltage(0.0) == struct.pack("<H", 32768)

    def test_five_volts(self):
        assert encode_voltage(5.0) == struct.pack("<H", 49152)

    @pytest.mark.parametrize("volts", [-10.001, 10.001, 100.0])
    def test_out_of_range_rejected(self, volts):
        with pytest.raises(ValidationError, match="Voltage"):
            encode_voltage(volts)


class TestTimeEncoding:
    def test_one_millisecond_is_twenty_cycles(self):
        assert encode_time(0.001) == struct.pack("<I", 20)

    def test_smallest_period(self):
        assert encode_time(0.0001) == struct.pack("<I", 2)

    def test_one_hour(self):
        assert encode_time(3600) == struct.pack("<I", 72_000_000)

    def test_zero_allowed_for_delays(self):
        assert encode_time(0.0) == struct.pack("<I", 0)

    @pytest.mark.parametrize("seconds", [-0.0001, 3600.0001])
    def test_out_of_range_rejected(self, seconds):
        with pytest.raises(ValidationError, match="Time period"):
            encode_time(seconds)


class TestByteEncoding:
    def test_flags(self):
        assert encode_byte(True) == b"\x01"
        assert encode_byte(False) == b"\x00"

    def test_enum_member(self):
        assert encode_byte(CustomTrainId.CUSTOM_TRAIN_2) == b"\x02"


class TestEnums:
    def test_output_channels(self):
        assert [int(c) for c in OutputChannel] == [1, 2, 3, 4]

    def test_custom_train_ids(self):
        assert CustomTrainId.NONE == 0
        assert CustomTrainId.CUSTOM_TRAIN_1 == 1
        assert CustomTrainId.CUSTOM_TRAIN_2 == 2

    def test_custom_train_targets(self):
        assert CustomTrainTarget.TIME == 0
        assert CustomTrainTarget.PULSE_WIDTH == 1

    def test_parameter_codes_are_contiguous(self):
        assert [int(c) for c in ParameterCode] == list(range(1, 18))


# ══════════════════════════════════════════════════════════════════════════
#  Layer 2: Protocol — Messages & confirm checking
# ══════════════════════════════════════════════════════════════════════════


class TestProtocol:
    def test_handshake_returns_firmware_version(self, protocol, fake_serial):
        assert protocol.handshake() == 20
        assert fake_serial.written[-1] == bytes([213, 72])

    def test_handshake_wrong_reply_raises(self, protocol, fake_serial):
        fake_serial.set_response(b"\x00\x00\x00\x00\x00")
        with pytest.raises(ConnectionError, match="handshake"):
            protocol.handshake()

    def test_program_param_format(self, protocol, fake_serial):
        protocol.program_param(3, ParameterCode.BURST_DURATION, encode_time(0.1))
        assert fake_serial.written[-1] == program_message(
            ParameterCode.BURST_DURATION, 3, struct.pack("<I", 2000)
        )

    def test_program_param_rejected(self, protocol, fake_serial):
        fake_serial.set_response(b"\x00")
        with pytest.raises(DeviceCommandError, match="rejected PHASE1_VOLTAGE"):
            protocol.program_param(1, ParameterCode.PHASE1_VOLTAGE, encode_voltage(1.0))

    def test_program_param_no_reply_times_out(self, protocol, fake_serial):
        fake_serial.set_response(b"")
        with pytest.raises(TimeoutError):
            protocol.program_param(1, ParameterCode.BIPHASIC, encode_byte(True))

    @pytest.mark.parametrize("channel", [0, 5, -1])
    def test_invalid_channel_rejected(self, protocol, fake_serial, channel):
        with pytest.raises(ValidationError):
            protocol.program_param(channel, ParameterCode.BIPHASIC, encode_byte(True))
        assert fake_serial.written == []

    def test_end_session_format(self, protocol, fake_serial):
        protocol.end_session()
        assert fake_serial.written[-1] == bytes([213, 81])


# ══════════════════════════════════════════════════════════════════════════
#  Layer 3: Driver
# ══════════════════════════════════════════════════════════════════════════


class TestDriverConnection:
    def test_open_sets_is_open(self, pulse_pal):
        assert pulse_pal.is_open

    def test_open_reads_firmware_version(self, pulse_pal):
        assert pulse_pal.firmware_version == 20

    def test_close_ends_session(self, pulse_pal, fake_serial):
        pulse_pal.close()
        assert fake_serial.written[-1] == bytes([213, 81])
        assert not pulse_pal.is_open

    def test_close_twice_is_safe(self, pulse_pal, fake_serial):
        pulse_pal.close()
        pulse_pal.close()
        assert fake_serial.written.count(bytes([213, 81])) == 1

    def test_handshake_failure_closes_port(self):
        fake = FakeSerial()
        fake.set_response(b"\x00")
        with patch("pulsepal.transport.serial.Serial", return_value=fake):
            device = PulsePal("/dev/fake")
            with pytest.raises(ConnectionError, match="handshake"):
                device.open()
        assert not fake.is_open

    def test_silent_device_raises_connection_error(self):
        fake = FakeSerial()
        fake.set_response(b"")
        with patch("pulsepal.transport.serial.Serial", return_value=fake):
            device = PulsePal("/dev/fake")
            with pytest.raises(ConnectionError, match="not responding") as info:
                device.open()
        assert isinstance(info.value.__cause__, TimeoutError)
        assert not fake.is_open

    def test_context_manager_closes(self, fake_serial):
        with patch("pulsepal.transport.serial.Serial", return_value=fake_serial):
            with get_pulse_pal("/dev/fake") as device:
                assert device.is_open
            assert not fake_serial.is_open


class TestDriverSetters:
    """Each setter sends one program-parameter message for its code."""

    @pytest.mark.parametrize(
        ("method", "code", "value", "payload"),
        [
            ("set_biphasic", ParameterCode.BIPHASIC, True, b"\x01"),
            ("set_phase1_voltage", ParameterCode.PHASE1_VOLTAGE, 5.0, struct.pack("<H", 49152)),
            ("set_phase2_voltage", ParameterCode.PHASE2_VOLTAGE, -10.0, struct.pack("<H", 0)),
            ("set_resting_voltage", ParameterCode.RESTING_VOLTAGE, 0.0, struct.pack("<H", 32768)),
            ("set_phase1_duration", ParameterCode.PHASE1_DURATION, 0.001, struct.pack("<I", 20)),
            (
                "set_inter_phase_interval",
                ParameterCode.INTER_PHASE_INTERVAL,
                0.0001,
                struct.pack("<I", 2),
            ),
            ("set_phase2_duration", ParameterCode.PHASE2_DURATION, 0.002, struct.pack("<I", 40)),
            (
                "set_inter_pulse_interval",
                ParameterCode.INTER_PULSE_INTERVAL,
                0.01,
                struct.pack("<I", 200),
            ),
            ("set_burst_duration", ParameterCode.BURST_DURATION, 0.1, struct.pack("<I", 2000)),
            (
                "set_inter_burst_interval",
                ParameterCode.INTER_BURST_INTERVAL,
                0.5,
                struct.pack("<I", 10000),
            ),
            (
                "set_pulse_train_duration",
                ParameterCode.PULSE_TRAIN_DURATION,
                1.0,
                struct.pack("<I", 20000),
            ),
            ("set_pulse_train_delay", ParameterCode.PULSE_TRAIN_DELAY, 0.0, struct.pack("<I", 0)),
            ("set_trigger_on_channel1", ParameterCode.TRIGGER_ON_CHANNEL1, True, b"\x01"),
            ("set_trigger_on_channel2", ParameterCode.TRIGGER_ON_CHANNEL2, False, b"\x00"),
            (
                "set_custom_train_identity",
                ParameterCode.CUSTOM_TRAIN_IDENTITY,
                CustomTrainId.CUSTOM_TRAIN_1,
                b"\x01",
            ),
            (
                "set_custom_train_target",
                ParameterCode.CUSTOM_TRAIN_TARGET,
                CustomTrainTarget.PULSE_WIDTH,
                b"\x01",
            ),
            ("set_custom_train_loop", ParameterCode.CUSTOM_TRAIN_LOOP, True, b"\x01"),
        ],
    )
    def test_setter_message(self, pulse_pal, fake_serial, method, code, value, payload):
        getattr(pulse_pal, method)(OutputChannel.CHANNEL_2, value)
        assert fake_serial.written == [program_message(code, 2, payload)]

    def test_rejected_setter_raises(self, pulse_pal, fake_serial):
        fake_serial.set_response(b"\x00")
        with pytest.raises(DeviceCommandError):
            pulse_pal.set_burst_duration(1, 0.5)

    def test_out_of_range_value_not_sent(self, pulse_pal, fake_serial):
        with pytest.raises(ValidationError):
            pulse_pal.set_phase1_voltage(1, 11.0)
        assert fake_serial.written == []


# ══════════════════════════════════════════════════════════════════════════
#  Hardware integration tests — require a real device
# ══════════════════════════════════════════════════════════════════════════


@pytest.mark.hardware
class TestHardwareIntegration:
    """Run only with ``pytest -m hardware``.

    These tests talk to a real Pulse Pal on :data:`DEFAULT_PORT`.
    """

    @pytest.fixture(autouse=True)
    def _open_device(self):
        self.device = PulsePal(HARDWARE_PORT)
        self.device.open()
        yield
        self.device.close()

    def test_firmware_version(self):
        assert self.device.firmware_version is not None
        assert self.device.firmware_version > 0

    def test_all_channels_accept_monophasic(self):
        for channel in OutputChannel:
            self.device.set_biphasic(channel, False)
            self.device.set_resting_voltage(channel, 0.0)
