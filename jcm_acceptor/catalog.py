"""
ID003 Command Catalog.

Static lookup tables built once at import time: pre-encoded command
frames, status names and fault descriptions.
"""

from enum import Enum
from types import MappingProxyType
from typing import Final, Mapping, Optional

from .constants import (
    BILL_DENOMINATIONS,
    FAILURE_STATUSES,
    Command,
    DeviceStatus,
    FailureCode,
)
from .transport import encode_frame


class CommandName(str, Enum):
    """Symbolic names of the commands the controller sends."""
    STATUS_REQUEST = "StatusRequest"
    ACKNOWLEDGE = "Acknowledge"
    RESET = "Reset"
    INHIBIT_ENABLE = "InhibitEnable"
    INHIBIT_DISABLE = "InhibitDisable"
    STACK = "Stack"
    RETURN = "Return"


COMMAND_FRAMES: Final[Mapping[CommandName, bytes]] = MappingProxyType({
    CommandName.STATUS_REQUEST: encode_frame(bytes([Command.STATUS_REQUEST])),
    CommandName.ACKNOWLEDGE: encode_frame(bytes([Command.ACK])),
    CommandName.RESET: encode_frame(bytes([Command.RESET])),
    CommandName.INHIBIT_ENABLE: encode_frame(bytes([Command.SET_INHIBIT, 0x01])),
    CommandName.INHIBIT_DISABLE: encode_frame(bytes([Command.SET_INHIBIT, 0x00])),
    CommandName.STACK: encode_frame(bytes([Command.STACK_1])),
    CommandName.RETURN: encode_frame(bytes([Command.RETURN])),
})


STATUS_NAMES: Final[Mapping[int, str]] = MappingProxyType({
    DeviceStatus.IDLING: "ENABLE (IDLING)",
    DeviceStatus.ACCEPTING: "ACCEPTING",
    DeviceStatus.ESCROW: "ESCROW",
    DeviceStatus.STACKING: "STACKING",
    DeviceStatus.VEND_VALID: "VEND VALID",
    DeviceStatus.STACKED: "STACKED",
    DeviceStatus.REJECTING: "REJECTING",
    DeviceStatus.RETURNING: "RETURNING",
    DeviceStatus.HOLDING: "HOLDING",
    DeviceStatus.INHIBIT: "DISABLE (INHIBIT)",
    DeviceStatus.INITIALIZE: "INITIALIZE",
    DeviceStatus.POWER_UP: "POWER UP",
    DeviceStatus.POWER_UP_BILL_ACCEPTOR: "POWER UP WITH BILL IN ACCEPTOR",
    DeviceStatus.POWER_UP_BILL_STACKER: "POWER UP WITH BILL IN STACKER",
})


FAULT_MESSAGES: Final[Mapping[int, str]] = MappingProxyType({
    DeviceStatus.STACKER_FULL: "STACKER FULL",
    DeviceStatus.STACKER_OPEN: "STACKER OPEN OR STACKER BOX REMOVED",
    DeviceStatus.JAM_IN_ACCEPTOR: "JAM IN ACCEPTOR",
    DeviceStatus.JAM_IN_STACKER: "JAM IN STACKER",
    DeviceStatus.PAUSE: "PAUSE DUE TO SECOND BILL INSERTION PLEASE REMOVE SECOND BILL",
    DeviceStatus.CHEATED: "CHEATING ERROR",
    DeviceStatus.FAILURE: "UNKNOWN FAILURE",
    DeviceStatus.COMMUNICATION_ERROR: "COMMUNICATION FAILURE",
    DeviceStatus.INVALID_COMMAND: "INVALID COMMAND",
})

FAILURE_MESSAGES: Final[Mapping[int, str]] = MappingProxyType({
    FailureCode.STACK_MOTOR: "STACK MOTOR FAILURE",
    FailureCode.TRANSPORT_MOTOR_SPEED: "TRANSPORT MOTOR SPEED FAILURE",
    FailureCode.TRANSPORT_MOTOR: "TRANSPORT MOTOR FAILURE",
    FailureCode.SOLENOID: "SOLENOID FAILURE",
    FailureCode.PB_UNIT: "PB UNIT FAILURE",
    FailureCode.CASH_BOX_NOT_READY: "CASH BOX NOT READY",
    FailureCode.VALIDATOR_HEAD_REMOVED: "VALIDATOR HEAD REMOVE",
    FailureCode.BOOT_ROM: "BOOT ROM FAILURE",
    FailureCode.EXTERNAL_ROM: "EXTERNAL ROM FAILURE",
    FailureCode.RAM: "RAM FAILURE",
    FailureCode.EXTERNAL_ROM_WRITING: "EXTERNAL ROM WRITING FAILURE",
})


def get_command_frame(name: CommandName | str) -> bytes:
    """
    Get the pre-encoded frame for a command.

    Raises:
        KeyError: Unknown command name.
    """
    try:
        return COMMAND_FRAMES[CommandName(name)]
    except ValueError:
        raise KeyError(name) from None


def parse_status(status_code: int) -> Optional[DeviceStatus]:
    """Map a raw status byte to DeviceStatus, or None if unknown."""
    try:
        return DeviceStatus(status_code)
    except ValueError:
        return None


def is_failure_status(status_code: int) -> bool:
    """Check if a status byte belongs to the failure category."""
    return status_code in FAILURE_STATUSES


def get_status_name(status_code: int | None) -> str:
    """Get human-readable status name from status code."""
    if status_code is None:
        return "UNKNOWN"
    if status_code in STATUS_NAMES:
        return STATUS_NAMES[status_code]
    if status_code in FAULT_MESSAGES:
        return FAULT_MESSAGES[status_code]
    return f"UNKNOWN(0x{status_code:02X})"


def describe_fault(status_code: int, sub_code: Optional[int] = None) -> Optional[str]:
    """
    Describe a failure-category status.

    Args:
        status_code: Raw status byte.
        sub_code: Byte following the status, only meaningful for FAILURE.

    Returns:
        Fault description, or None for non-failure statuses.
    """
    if status_code not in FAULT_MESSAGES:
        return None
    if status_code == DeviceStatus.FAILURE and sub_code is not None:
        return FAILURE_MESSAGES.get(sub_code, FAULT_MESSAGES[status_code])
    return FAULT_MESSAGES[status_code]


def get_denomination(note_code: int | None) -> Optional[int]:
    """Get the note value for an escrow note code, or None if unknown."""
    if note_code is None:
        return None
    return BILL_DENOMINATIONS.get(note_code)
