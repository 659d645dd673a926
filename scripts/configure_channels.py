#!/usr/bin/env python3
"""
Configure Channels — apply Pulse Pal output channel settings from YAML.

Reads a YAML config file (see :mod:`pulsepal.config` for the format),
validates every channel, and programs each one over a single shared
connection.

Usage:
    python scripts/configure_channels.py                          # default config
    python scripts/configure_channels.py --config path/to/cfg.yaml
    python scripts/configure_channels.py --port COM3              # override port
    python scripts/configure_channels.py --dry-run                # validate only
    python scripts/configure_channels.py -v                       # debug logging
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from pulsepal import PulsePalError
from pulsepal.config import ProgramReport, PulsePalConfig, load_config, program_all

# ---------------------------------------------------------------------------
# Default config location (relative to this script)
# ---------------------------------------------------------------------------

DEFAULT_CONFIG = Path(__file__).resolve().parent.parent / "config" / "pulsepal.yaml"

# ---------------------------------------------------------------------------
# Terminal helpers
# ---------------------------------------------------------------------------


class C:
    """ANSI color codes (no-op on non-TTY)."""

    if sys.stdout.isatty():
        BOLD = "\033[1m"
        DIM = "\033[2m"
        GREEN = "\033[32m"
        RED = "\033[31m"
        RESET = "\033[0m"
    else:
        BOLD = DIM = GREEN = RED = RESET = ""


def ok(text: str) -> None:
    print(f"  {C.GREEN}✓{C.RESET} {text}")


def fail(text: str) -> None:
    print(f"  {C.RED}✗{C.RESET} {text}")


def info(text: str) -> None:
    print(f"  {C.DIM}{text}{C.RESET}")


def banner(text: str) -> None:
    print(f"\n{C.BOLD}{'═' * 60}")
    print(f"  {text}")
    print(f"{'═' * 60}{C.RESET}")


# ---------------------------------------------------------------------------
# Report display
# ---------------------------------------------------------------------------


def print_config_summary(config: PulsePalConfig) -> None:
    """Print a summary of the loaded config."""
    print(f"  Port: {config.port}")
    print("  Channels:")
    for ch in config.channels:
        kind = "biphasic" if ch.biphasic else "monophasic"
        print(
            f"    CH{int(ch.channel)}: {kind:10s} {ch.phase1_voltage:+7.3f} V "
            f"for {ch.phase1_duration * 1000:.1f} ms, "
            f"every {ch.inter_pulse_interval * 1000:.1f} ms "
            f"for {ch.pulse_train_duration:g} s"
        )


def print_report(report: ProgramReport, heading: str) -> None:
    """Print a formatted report of channel results."""
    banner(heading)
    for r in report.results:
        if r.success:
            ok(r.message)
        else:
            fail(r.message)
    print()
    status = f"{C.GREEN}ALL OK{C.RESET}" if report.all_ok else f"{C.RED}FAILURES DETECTED{C.RESET}"
    print(f"  {report.summary}  —  {status}")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Apply Pulse Pal output channel settings from a YAML config.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG,
        help=f"Path to YAML config file (default: {DEFAULT_CONFIG.name})",
    )
    parser.add_argument(
        "--port",
        help="Serial port to use instead of the one in the config file",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Load and validate the config without touching the device",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging (wire traffic, lease bookkeeping)",
    )
    return parser


def main() -> int:
    parser = build_parser()
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )

    try:
        config = load_config(args.config)
    except (FileNotFoundError, PulsePalError) as exc:
        print(f"{C.RED}✗{C.RESET} Config error: {exc}", file=sys.stderr)
        return 1

    if args.port:
        config = replace(config, port=args.port)

    banner("Pulse Pal Channel Configuration")
    print_config_summary(config)

    if args.dry_run:
        info("--dry-run: config is valid, device not contacted.")
        return 0

    report = program_all(config)
    print_report(report, "Configuration Results")
    return 0 if report.all_ok else 1


if __name__ == "__main__":
    sys.exit(main())
