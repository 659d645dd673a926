"""Shared runtime constants for the Pulse Pal pulse generator.

This is the canonical source of truth for parameter limits, firmware
constants and connection defaults.  Other modules should import from here
rather than defining their own copies.
"""

# ---------------------------------------------------------------------------
# Parameter limits
# ---------------------------------------------------------------------------

MIN_CHANNEL = 1
MAX_CHANNEL = 4

MIN_VOLTAGE = -10.0
MAX_VOLTAGE = 10.0
VOLTAGE_INCREMENT = 0.001

MIN_TIME_PERIOD = 0.0001
MAX_TIME_PERIOD = 3600.0
TIME_INCREMENT = 0.0001

MIN_TRAIN_DELAY = 0.0  # a train may start immediately on trigger

# ---------------------------------------------------------------------------
# Firmware constants
# ---------------------------------------------------------------------------

OP_MENU_BYTE = 213
OP_HANDSHAKE = 72
OP_PROGRAM_PARAM = 74
OP_END_SESSION = 81
HANDSHAKE_REPLY = 75
PROGRAM_CONFIRM = 1

CYCLE_FREQUENCY_HZ = 20_000  # timer clock; time values are sent in cycles
DAC_MAX = 65_535  # 16-bit output DAC

# ---------------------------------------------------------------------------
# Connection defaults
# ---------------------------------------------------------------------------

DEFAULT_PORT = "/dev/ttyACM0"
DEFAULT_BAUD = 115_200
DEFAULT_TIMEOUT = 1.0
