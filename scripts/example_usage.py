#!/usr/bin/env python3
"""
Example usage of the pulsepal package

This script demonstrates:
- Applying one parameter set to a channel
- Sharing one port between two pipeline operators
- Handling validation and device errors
"""

import sys
import time

# Add src to path so we can import pulsepal
sys.path.insert(0, "src")

from pulsepal import (
    ChannelParameters,
    ConfigureOutputChannel,
    OutputChannel,
    PulsePalError,
    ValidationError,
    apply,
)

PORT = "/dev/ttyACM0"


def triggers(count, period):
    """Stand-in for an upstream event source."""
    for i in range(count):
        time.sleep(period)
        yield i


def main():
    """Run example configuration sequence"""

    print("Pulse Pal - Example Usage")
    print("=" * 60)

    # Example 1: one-off configuration
    print("\nExample 1: 1 ms biphasic pulses at 100 Hz on channel 1")
    params = ChannelParameters(
        biphasic=True,
        phase1_voltage=5.0,
        phase2_voltage=-5.0,
        phase1_duration=0.001,
        phase2_duration=0.001,
        inter_phase_interval=0.0001,
        inter_pulse_interval=0.01,
        pulse_train_duration=2.0,
    )
    apply(PORT, OutputChannel.CHANNEL_1, params)
    print("✓ Channel 1 configured")

    # Example 2: two operators on the same port share one connection
    print("\n" + "=" * 60)
    print("Example 2: reconfigure channel 2 on every trigger")
    operator = ConfigureOutputChannel(
        PORT, ChannelParameters(channel=OutputChannel.CHANNEL_2, phase1_voltage=2.5)
    )
    for event in operator.process(triggers(3, 0.5)):
        print(f"✓ Trigger {event}: channel 2 configured")

    # Example 3: invalid values never reach the device
    print("\n" + "=" * 60)
    print("Example 3: out-of-range voltage")
    try:
        apply(PORT, OutputChannel.CHANNEL_3, ChannelParameters(phase1_voltage=15.0))
    except ValidationError as exc:
        print(f"✓ Rejected before sending: {exc}")

    print("\n" + "=" * 60)
    print("Example complete!")


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
    except PulsePalError as e:
        print(f"\nError: {e}")
        sys.exit(1)
