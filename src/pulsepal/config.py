"""
Channel configuration files — load Pulse Pal channel settings from YAML and
apply them in one pass.

Both the CLI script and experiment code can import this directly::

    from pulsepal.config import load_config, program_all

    config = load_config("config/pulsepal.yaml")
    report = program_all(config)
    print(report.summary)

File format::

    port: /dev/ttyACM0
    channels:
      1:
        biphasic: true
        phase1_voltage: 5.0
        phase2_voltage: -5.0
        phase1_duration: 0.001
      2:
        custom_train_identity: 1
        custom_train_target: time

Keys omitted for a channel take the :class:`ChannelParameters` defaults.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path

import yaml

from .configurator import apply
from .constants import MAX_CHANNEL, MIN_CHANNEL
from .exceptions import PulsePalError, ValidationError
from .parameters import ChannelParameters
from .protocol import CustomTrainId, CustomTrainTarget, OutputChannel
from .registry import ConnectionRegistry, default_registry

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration data model
# ---------------------------------------------------------------------------

_PARAMETER_KEYS = {f.name for f in fields(ChannelParameters)} - {"channel"}

_ENUM_KEYS = {
    "custom_train_identity": CustomTrainId,
    "custom_train_target": CustomTrainTarget,
}


@dataclass(frozen=True)
class PulsePalConfig:
    """Top-level configuration loaded from a YAML file."""

    port: str
    channels: list[ChannelParameters] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Config loading & validation
# ---------------------------------------------------------------------------


def load_config(path: str | Path) -> PulsePalConfig:
    """Load and validate a channel configuration from a YAML file.

    Args:
        path: Path to the YAML config file.

    Returns:
        A validated :class:`PulsePalConfig`, channels sorted by number.

    Raises:
        FileNotFoundError: If *path* does not exist.
        ValidationError: If the config is malformed or contains invalid values.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, dict):
        raise ValidationError(f"Config file must be a YAML mapping, got {type(raw).__name__}")

    port = raw.get("port")
    if not isinstance(port, str) or not port:
        raise ValidationError("Config must specify a non-empty 'port' string")

    raw_channels = raw.get("channels")
    if not isinstance(raw_channels, dict) or not raw_channels:
        raise ValidationError("Config must contain a non-empty 'channels' mapping")

    channels = [_parse_channel(key, data) for key, data in raw_channels.items()]
    numbers = [int(c.channel) for c in channels]
    duplicates = sorted({n for n in numbers if numbers.count(n) > 1})
    if duplicates:
        raise ValidationError(f"Channel(s) {duplicates} defined more than once")
    channels.sort(key=lambda c: c.channel)

    return PulsePalConfig(port=port, channels=channels)


def _parse_channel(ch_key: int | str, data: dict | None) -> ChannelParameters:
    """Parse and validate a single channel entry from the config."""
    # int() would truncate 1.5 and accept True
    if isinstance(ch_key, bool) or not isinstance(ch_key, (int, str)):
        raise ValidationError(f"Channel key must be an integer, got {ch_key!r}")
    try:
        number = int(ch_key)
    except (ValueError, TypeError) as exc:
        raise ValidationError(f"Channel key must be an integer, got {ch_key!r}") from exc

    if not (MIN_CHANNEL <= number <= MAX_CHANNEL):
        raise ValidationError(f"Channel must be {MIN_CHANNEL}-{MAX_CHANNEL}, got {number}")

    data = data or {}
    if not isinstance(data, dict):
        raise ValidationError(f"Channel {number} config must be a mapping")

    unknown = sorted(set(data) - _PARAMETER_KEYS)
    if unknown:
        raise ValidationError(f"Channel {number}: unknown key(s) {unknown}")

    values = {key: _coerce(number, key, value) for key, value in data.items()}
    params = ChannelParameters(channel=OutputChannel(number), **values)
    try:
        params.validate()
    except ValidationError as exc:
        raise ValidationError(f"Channel {number}: {exc}", field=exc.field) from exc
    return params


def _coerce(channel: int, key: str, value):
    """Turn YAML scalars into the types :class:`ChannelParameters` expects."""
    enum_type = _ENUM_KEYS.get(key)
    if enum_type is None:
        # YAML reads "1" and "0.5" as int/float already; ints are valid reals
        return value
    if isinstance(value, str):
        name = value.strip().upper().replace(" ", "_").replace("-", "_")
        if name in enum_type.__members__:
            return enum_type[name]
    elif isinstance(value, int) and not isinstance(value, bool):
        try:
            return enum_type(value)
        except ValueError:
            pass
    raise ValidationError(
        f"Channel {channel}: '{key}' must be one of "
        f"{[m.name.lower() for m in enum_type]}, got {value!r}",
        field=key,
    )


# ---------------------------------------------------------------------------
# Programming
# ---------------------------------------------------------------------------


@dataclass
class ChannelResult:
    """Outcome of configuring a single channel."""

    parameters: ChannelParameters
    success: bool
    message: str


@dataclass
class ProgramReport:
    """Aggregate outcome of a program_all operation."""

    results: list[ChannelResult] = field(default_factory=list)

    @property
    def all_ok(self) -> bool:
        return all(r.success for r in self.results)

    @property
    def summary(self) -> str:
        passed = sum(1 for r in self.results if r.success)
        total = len(self.results)
        return f"{passed}/{total} channels {'OK' if self.all_ok else 'FAILED'}"


def program_channel(
    port: str,
    params: ChannelParameters,
    registry: ConnectionRegistry | None = None,
) -> ChannelResult:
    """Apply *params* to its channel and report the outcome instead of raising."""
    label = f"CH{int(params.channel)}"
    try:
        apply(port, params.channel, params, registry=registry)
        msg = f"{label} → configured"
        logger.info("Programmed %s on %s", label, port)
        return ChannelResult(params, success=True, message=msg)

    except PulsePalError as exc:
        msg = f"{label} → FAILED: {exc}"
        logger.error("Programming failed: %s", msg)
        return ChannelResult(params, success=False, message=msg)


def program_all(config: PulsePalConfig, registry: ConnectionRegistry | None = None) -> ProgramReport:
    """Apply every channel in *config*.

    The port stays reserved for the whole batch.  Failures are recorded per
    channel; later channels are still attempted.
    """
    registry = registry or default_registry()
    report = ProgramReport()
    try:
        lease = registry.reserve(config.port)
    except PulsePalError as exc:
        logger.error("Cannot reserve %s: %s", config.port, exc)
        for params in config.channels:
            msg = f"CH{int(params.channel)} → FAILED: {exc}"
            report.results.append(ChannelResult(params, success=False, message=msg))
        return report

    with lease:
        for params in config.channels:
            report.results.append(program_channel(config.port, params, registry))
    return report
