"""
JCM ID003 Protocol Constants and Enumerations.

Commands and status codes are defined as IntEnum so they compare equal
to the raw bytes read from the wire.
"""

from enum import IntEnum
from types import MappingProxyType
from typing import Final, Mapping


# Protocol constants
SYNC_BYTE: Final[int] = 0xFC
CRC_POLYNOMIAL: Final[int] = 0x1081  # Nibble-wise CRC-16 polynomial
MIN_FRAME_LENGTH: Final[int] = 5  # SYNC + LNG + CMD + CRC(2)
MAX_FRAME_LENGTH: Final[int] = 250

# Timing constants (seconds)
POLLING_CYCLE_S: Final[float] = 0.2
ERROR_RECOVERY_S: Final[float] = 5.0
STATUS_RETRY_WINDOW_S: Final[float] = 3.0
READ_TIMEOUT_S: Final[float] = 0.05
WRITE_TIMEOUT_S: Final[float] = 0.1

# Serial line settings
DEFAULT_BAUDRATE: Final[int] = 9600


class Command(IntEnum):
    """
    ID003 commands sent from controller to acceptor.

    STATUS_REQUEST shares its opcode with the IDLING status; the two are
    told apart by direction only.
    """
    STATUS_REQUEST = 0x11
    RESET = 0x40
    STACK_1 = 0x41
    RETURN = 0x43
    ACK = 0x50
    SET_INHIBIT = 0xC3


class DeviceStatus(IntEnum):
    """
    Status codes reported by the acceptor in reply to STATUS_REQUEST.
    """
    # Operational states
    IDLING = 0x11
    ACCEPTING = 0x12
    ESCROW = 0x13          # + note code
    STACKING = 0x14
    VEND_VALID = 0x15
    STACKED = 0x16
    REJECTING = 0x17       # + reject reason
    RETURNING = 0x18
    HOLDING = 0x19
    INHIBIT = 0x1A
    INITIALIZE = 0x1B

    # Power-up states
    POWER_UP = 0x40
    POWER_UP_BILL_ACCEPTOR = 0x41
    POWER_UP_BILL_STACKER = 0x42

    # Error states
    STACKER_FULL = 0x43
    STACKER_OPEN = 0x44
    JAM_IN_ACCEPTOR = 0x45
    JAM_IN_STACKER = 0x46
    PAUSE = 0x47
    CHEATED = 0x48
    FAILURE = 0x49         # + failure sub-code
    COMMUNICATION_ERROR = 0x4A
    INVALID_COMMAND = 0x4B


class FailureCode(IntEnum):
    """Sub-codes refining the generic FAILURE status."""
    STACK_MOTOR = 0xA2
    TRANSPORT_MOTOR_SPEED = 0xA5
    TRANSPORT_MOTOR = 0xA6
    SOLENOID = 0xA8
    PB_UNIT = 0xA9
    CASH_BOX_NOT_READY = 0xAB
    VALIDATOR_HEAD_REMOVED = 0xAF
    BOOT_ROM = 0xB0
    EXTERNAL_ROM = 0xB1
    RAM = 0xB2
    EXTERNAL_ROM_WRITING = 0xB3


class EventType(str):
    """
    Events emitted by the controller.

    Used for callback-based event system.
    """
    BILL_ESCROW = "BILL_ESCROW"
    BILL_STACKED = "BILL_STACKED"
    BILL_REJECTED = "BILL_REJECTED"
    BILL_RETURNED = "BILL_RETURNED"
    BILL_JAMMED = "BILL_JAMMED"
    POWER_RECOVERY = "POWER_RECOVERY"
    STATE_CHANGED = "STATE_CHANGED"
    COMM_FAILURE = "COMM_FAILURE"
    DEVICE_FAULT = "DEVICE_FAULT"


FAILURE_STATUSES: Final[frozenset[int]] = frozenset(range(0x43, 0x4C))

# Statuses after which the acceptor must be reset before enabling
JUST_POWERED_STATUSES: Final[frozenset[int]] = frozenset({
    DeviceStatus.POWER_UP,
    DeviceStatus.POWER_UP_BILL_STACKER,
})


# Note code (escrow data byte) -> currency units
BILL_DENOMINATIONS: Final[Mapping[int, int]] = MappingProxyType({
    0x61: 10,
    0x62: 20,
    0x63: 50,
    0x64: 100,
    0x65: 200,
    0x66: 500,
    0x67: 1000,
    0x68: 2000,
})
