"""
Apply a :class:`~pulsepal.parameters.ChannelParameters` bundle to one
Pulse Pal output channel.

:func:`apply` is the single-shot operation.  :class:`ConfigureOutputChannel`
wraps it as a pipeline operator: every element of an upstream sequence
triggers a configuration and is then passed through unchanged::

    operator = ConfigureOutputChannel("COM3", ChannelParameters(phase1_voltage=2.5))
    for event in operator.process(triggers):
        ...

A failing set-command aborts the sequence with :class:`DeviceCommandError`.
Commands sent before the failure are **not** rolled back, so the channel
may be left partially updated.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Iterator
from typing import TypeVar

from .exceptions import DeviceCommandError, OperationCancelled, PulsePalError, ValidationError
from .parameters import ChannelParameters, display_name
from .protocol import OutputChannel
from .registry import ConnectionRegistry, default_registry

logger = logging.getLogger(__name__)

T = TypeVar("T")

# (parameter field, driver method), in the order the firmware expects them
DISPATCH_ORDER: tuple[tuple[str, str], ...] = (
    ("biphasic", "set_biphasic"),
    ("phase1_voltage", "set_phase1_voltage"),
    ("phase2_voltage", "set_phase2_voltage"),
    ("phase1_duration", "set_phase1_duration"),
    ("inter_phase_interval", "set_inter_phase_interval"),
    ("phase2_duration", "set_phase2_duration"),
    ("inter_pulse_interval", "set_inter_pulse_interval"),
    ("burst_duration", "set_burst_duration"),
    ("inter_burst_interval", "set_inter_burst_interval"),
    ("pulse_train_duration", "set_pulse_train_duration"),
    ("pulse_train_delay", "set_pulse_train_delay"),
    ("trigger_on_channel1", "set_trigger_on_channel1"),
    ("trigger_on_channel2", "set_trigger_on_channel2"),
    ("custom_train_identity", "set_custom_train_identity"),
    ("custom_train_target", "set_custom_train_target"),
    ("custom_train_loop", "set_custom_train_loop"),
    ("resting_voltage", "set_resting_voltage"),
)


def _resolve_channel(channel: OutputChannel | int) -> OutputChannel:
    try:
        return OutputChannel(channel)
    except ValueError as err:
        raise ValidationError(
            f"Channel must be one of {[c.name for c in OutputChannel]}, got {channel!r}",
            field="channel",
        ) from err


def apply(
    port: str,
    channel: OutputChannel,
    parameters: ChannelParameters,
    *,
    registry: ConnectionRegistry | None = None,
    cancel: threading.Event | None = None,
) -> None:
    """Configure *channel* on the Pulse Pal at *port* with *parameters*.

    The whole parameter set is validated before any I/O.  The connection
    is then reserved and its guard held while all 17 set-commands are sent,
    so no other configuration on the same port can interleave with them.
    *channel* is the target; ``parameters.channel`` is ignored here.

    Args:
        port: Serial port identifier.
        channel: Output channel to configure.
        parameters: Values to send.
        registry: Connection registry; defaults to the process-wide one.
        cancel: If set by the time the guard is acquired, nothing is sent.

    Raises:
        ValidationError: A parameter is out of range; no I/O was performed.
        ConnectionError: The port could not be opened.
        OperationCancelled: *cancel* was set before dispatch started.
        DeviceCommandError: A set-command failed; earlier commands stand.
    """
    target = _resolve_channel(channel)
    parameters.validate()
    registry = registry or default_registry()

    with registry.reserve(port) as lease, lease.exclusive() as device:
        if cancel is not None and cancel.is_set():
            raise OperationCancelled(f"Configuration of {target.name} on {port} cancelled")
        logger.debug("Configuring %s on %s", target.name, port)
        for field, method in DISPATCH_ORDER:
            value = getattr(parameters, field)
            try:
                getattr(device, method)(target, value)
            except (PulsePalError, OSError) as exc:
                raise DeviceCommandError(
                    f"{display_name(field)} ({field}) failed on {target.name} "
                    f"at {port}: {exc}",
                    field=field,
                ) from exc
    logger.info("Configured %s on %s", target.name, port)


class ConfigureOutputChannel:
    """Pipeline operator that configures an output channel on every notification.

    Args:
        port_name: Serial port of the Pulse Pal.
        parameters: Values applied on each notification.
        channel: Output channel to configure; defaults to ``parameters.channel``.
        registry: Connection registry; defaults to the process-wide one.
    """

    def __init__(
        self,
        port_name: str,
        parameters: ChannelParameters,
        channel: OutputChannel | None = None,
        registry: ConnectionRegistry | None = None,
    ) -> None:
        self.port_name = port_name
        self.parameters = parameters
        self.channel = parameters.channel if channel is None else channel
        self.registry = registry or default_registry()

    def process(self, source: Iterable[T]) -> Iterator[T]:
        """Yield each element of *source* after configuring the channel.

        The connection stays reserved for as long as the returned iterator
        is being consumed, and is released when it is exhausted, fails, or
        is closed.
        """
        _resolve_channel(self.channel)
        self.parameters.validate()
        with self.registry.reserve(self.port_name):
            for item in source:
                apply(self.port_name, self.channel, self.parameters, registry=self.registry)
                yield item
