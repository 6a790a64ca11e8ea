"""
JCM ID003 Bill Acceptor Controller Package.

Async controller for JCM bill acceptors speaking the ID003 protocol.

Example:
    import asyncio
    from jcm_acceptor import JCMController, EventType

    async def on_bill_stacked(event_type: str, event):
        print(f"Bill accepted: {event.amount}")

    async def main():
        controller = JCMController(port='/dev/ttyUSB0')
        controller.add_callback(EventType.BILL_STACKED, on_bill_stacked)

        await controller.enable()
        await controller.run_polling_loop()

    asyncio.run(main())
"""

from .constants import (
    Command,
    DeviceStatus,
    EventType,
    FailureCode,
    BILL_DENOMINATIONS,
    SYNC_BYTE,
)
from .crc import (
    calculate_crc16,
    verify_crc16,
    append_crc,
)
from .exceptions import (
    AcceptorError,
    DeviceError,
    DeviceFault,
    FrameCRCError,
    FrameError,
    FrameFormatError,
    PollingInProgressError,
    TransportError,
    TransportTimeoutError,
)
from .transport import (
    ID003Frame,
    SerialTransportPort,
    TransportPort,
    decode_frame,
    encode_frame,
)
from .catalog import (
    CommandName,
    describe_fault,
    get_command_frame,
    get_denomination,
    get_status_name,
    parse_status,
)
from .protocol import (
    CommFailure,
    CommFailureReason,
    LinkSession,
    StatusResponse,
)
from .ledger import CashLedger
from .state_machine import (
    AcceptorStateMachine,
    Action,
    SessionState,
    StepResult,
    TRANSITION_TABLE,
)
from .driver import (
    AcceptorEvent,
    JCMController,
)


__all__ = [
    # Main controller
    'JCMController',
    'AcceptorEvent',

    # Constants and enums
    'Command',
    'CommandName',
    'DeviceStatus',
    'EventType',
    'FailureCode',
    'BILL_DENOMINATIONS',
    'SYNC_BYTE',

    # Frame codec
    'calculate_crc16',
    'verify_crc16',
    'append_crc',
    'ID003Frame',
    'encode_frame',
    'decode_frame',

    # Catalog lookups
    'describe_fault',
    'get_command_frame',
    'get_denomination',
    'get_status_name',
    'parse_status',

    # Link
    'TransportPort',
    'SerialTransportPort',
    'LinkSession',
    'StatusResponse',
    'CommFailure',
    'CommFailureReason',

    # State machine and ledger
    'AcceptorStateMachine',
    'Action',
    'SessionState',
    'StepResult',
    'TRANSITION_TABLE',
    'CashLedger',

    # Exceptions
    'AcceptorError',
    'DeviceError',
    'DeviceFault',
    'FrameError',
    'FrameCRCError',
    'FrameFormatError',
    'PollingInProgressError',
    'TransportError',
    'TransportTimeoutError',
]

__version__ = '1.0.0'
