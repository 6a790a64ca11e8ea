"""
JCM Bill Acceptor Controller (Application Layer).

High-level async controller for JCM bill acceptors speaking the ID003
protocol. Polls the acceptor, follows the bill cycle through the session
state machine and books stacked notes into the cash ledger.

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

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Mapping, Optional

import serial

from .catalog import CommandName
from .constants import (
    BILL_DENOMINATIONS,
    DEFAULT_BAUDRATE,
    ERROR_RECOVERY_S,
    JUST_POWERED_STATUSES,
    POLLING_CYCLE_S,
    READ_TIMEOUT_S,
    STATUS_RETRY_WINDOW_S,
    WRITE_TIMEOUT_S,
    DeviceStatus,
    EventType,
)
from .exceptions import DeviceFault, PollingInProgressError
from .ledger import CashLedger
from .protocol import CommFailure, LinkSession, StatusResponse
from .settings import Settings
from .state_machine import Action, AcceptorStateMachine, SessionState, StepResult
from .transport import SerialTransportPort, TransportPort


logger = logging.getLogger(__name__)


@dataclass
class AcceptorEvent:
    """
    Payload passed to event callbacks.

    Attributes:
        session_state: Session state after the event.
        previous_state: Session state before the event.
        status_code: Raw status byte that triggered the event.
        amount: Note value for bill events.
        description: Fault or failure text.
    """
    session_state: SessionState
    previous_state: Optional[SessionState] = None
    status_code: Optional[int] = None
    amount: int = 0
    description: Optional[str] = None


# Type alias for event callbacks
EventCallback = Callable[[str, AcceptorEvent], Awaitable[None]]


class JCMController:
    """
    Async controller for one ID003 bill acceptor.

    Attributes:
        port: Serial port path.
        polling_cycle: Delay between polls in seconds.
        error_recovery: Delay after a communication failure in seconds.
        verbose: Emit per-cycle diagnostics at INFO level.
    """

    def __init__(
        self,
        port: str = '/dev/ttyUSB0',
        baudrate: int = DEFAULT_BAUDRATE,
        bytesize: int = serial.EIGHTBITS,
        parity: str = serial.PARITY_EVEN,
        stopbits: float = serial.STOPBITS_ONE,
        read_timeout: float = READ_TIMEOUT_S,
        write_timeout: float = WRITE_TIMEOUT_S,
        polling_cycle: float = POLLING_CYCLE_S,
        error_recovery: float = ERROR_RECOVERY_S,
        status_retry_window: float = STATUS_RETRY_WINDOW_S,
        preset_cash: Optional[Mapping[int, int]] = None,
        verbose: bool = False,
        transport: Optional[TransportPort] = None,
    ) -> None:
        """
        Initialize the controller.

        Args:
            port: Serial port path (e.g., '/dev/ttyUSB0').
            baudrate: Serial port baudrate (default 9600).
            bytesize: Serial data bits (default 8).
            parity: Serial parity (default even).
            stopbits: Serial stop bits (default 1).
            read_timeout: Per-read timeout in seconds.
            write_timeout: Per-write timeout in seconds.
            polling_cycle: Delay between status polls in seconds.
            error_recovery: Delay after a communication failure in seconds.
            status_retry_window: Retry window for one status request.
            preset_cash: Initial ledger counts (denomination -> count).
            verbose: Log frame dumps and cash totals at INFO level.
            transport: Transport port to use instead of the serial port.
        """
        self._port = port
        self._polling_cycle = polling_cycle
        self._error_recovery = error_recovery
        self._verbose = verbose

        self._transport = transport or SerialTransportPort(
            port,
            baudrate=baudrate,
            bytesize=bytesize,
            parity=parity,
            stopbits=stopbits,
        )
        self._link = LinkSession(
            self._transport,
            read_timeout=read_timeout,
            write_timeout=write_timeout,
            retry_window=status_retry_window,
            verbose=verbose,
        )
        self._state_machine = AcceptorStateMachine()
        self._ledger = CashLedger(BILL_DENOMINATIONS.values(), preset=preset_cash)

        self._stop_event = asyncio.Event()
        self._running = False

        # Callbacks
        self._callbacks: dict[str, list[EventCallback]] = {}

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        preset_cash: Optional[Mapping[int, int]] = None,
        transport: Optional[TransportPort] = None,
    ) -> 'JCMController':
        """Build a controller from application settings."""
        return cls(
            port=settings.serial.port,
            baudrate=settings.serial.baudrate,
            bytesize=settings.serial.bytesize,
            parity=settings.serial.parity,
            stopbits=settings.serial.stopbits,
            read_timeout=settings.serial.read_timeout,
            write_timeout=settings.serial.write_timeout,
            polling_cycle=settings.timing.polling_cycle,
            error_recovery=settings.timing.error_recovery,
            status_retry_window=settings.timing.status_retry_window,
            preset_cash=preset_cash,
            verbose=settings.verbose,
            transport=transport,
        )

    @property
    def port(self) -> str:
        """Get serial port path."""
        return self._port

    @property
    def polling_cycle(self) -> float:
        return self._polling_cycle

    @property
    def error_recovery(self) -> float:
        return self._error_recovery

    @property
    def verbose(self) -> bool:
        return self._verbose

    @property
    def link(self) -> LinkSession:
        return self._link

    @property
    def session_state(self) -> SessionState:
        """Get current session state."""
        return self._state_machine.state

    @property
    def is_running(self) -> bool:
        """Check if the polling loop is running."""
        return self._running

    # -------------------------------------------------------------------------
    # Callbacks
    # -------------------------------------------------------------------------

    def add_callback(
        self,
        event_type: str,
        callback: EventCallback,
    ) -> None:
        """
        Register a callback for an event type.

        Event types (from EventType):
        - BILL_ESCROW: Bill in escrow, STACK sent
        - BILL_STACKED: Bill stored and credited
        - BILL_REJECTED: Bill rejected by the acceptor
        - BILL_RETURNED: Unrecognised bill handed back
        - BILL_JAMMED: Bill stuck while being rejected
        - POWER_RECOVERY: Power lost while stacking
        - STATE_CHANGED: Session state changed
        - COMM_FAILURE: Status could not be read this cycle
        - DEVICE_FAULT: Fatal fault reported by the acceptor

        Args:
            event_type: Event type string.
            callback: Async callback function(event_type, event).
        """
        if event_type not in self._callbacks:
            self._callbacks[event_type] = []
        self._callbacks[event_type].append(callback)

    def remove_callback(
        self,
        event_type: str,
        callback: EventCallback,
    ) -> None:
        """Remove a callback."""
        if event_type in self._callbacks:
            try:
                self._callbacks[event_type].remove(callback)
            except ValueError:
                pass

    async def _emit_event(
        self,
        event_type: str,
        event: AcceptorEvent,
    ) -> None:
        callbacks = self._callbacks.get(event_type, [])
        for callback in callbacks:
            try:
                await callback(event_type, event)
            except Exception as e:
                logger.error(f"Callback error for {event_type}: {e}")

    # -------------------------------------------------------------------------
    # Device commands
    # -------------------------------------------------------------------------

    async def request_status(self) -> StatusResponse | CommFailure:
        """Query the acceptor status once (with link retries)."""
        return await self._link.request_status()

    async def enable(self, reset_if_just_powered: bool = True) -> bool:
        """
        Enable bill acceptance.

        Args:
            reset_if_just_powered: Query the status first and send RESET if
                the acceptor has just powered up.

        Returns:
            True if the enable command was written.
        """
        if reset_if_just_powered:
            status = await self._link.request_status()
            if isinstance(status, CommFailure):
                logger.error(f"Cannot enable acceptor: {status}")
                return False
            if status.status_code in JUST_POWERED_STATUSES:
                logger.info(f"Acceptor reports {status.status_name}, resetting first")
                await self.reset(status)

        logger.info("Enabling bill acceptance")
        return await self._link.send_command(CommandName.INHIBIT_DISABLE)

    async def disable(self) -> bool:
        """
        Disable bill acceptance.

        Returns:
            True if the inhibit command was written.
        """
        logger.info("Disabling bill acceptance")
        return await self._link.send_command(CommandName.INHIBIT_ENABLE)

    async def reset(self, status: StatusResponse | CommFailure | None = None) -> bool:
        """
        Reset the acceptor.

        Any fault the acceptor reports is logged, never raised: the reset
        is sent regardless.

        Args:
            status: Status already read by the caller, queried if omitted.

        Returns:
            True if the reset command was written.
        """
        if status is None:
            status = await self._link.request_status()

        if isinstance(status, CommFailure):
            error: Optional[str] = "COMMUNICATION FAILURE"
        else:
            error = status.fault_description
        if error:
            logger.error(f"Resetting acceptor in error state: {error}")

        logger.info("Sending RESET command")
        return await self._link.send_command(CommandName.RESET)

    # -------------------------------------------------------------------------
    # Polling
    # -------------------------------------------------------------------------

    async def run_polling_loop(self) -> None:
        """
        Poll the acceptor until stop() is called.

        Raises:
            PollingInProgressError: Another polling loop is already running.
            DeviceFault: The acceptor reported a fatal fault.
        """
        if self._running:
            raise PollingInProgressError(device_name=self._port)

        logger.info("Poll loop started")
        self._stop_event.clear()
        self._running = True

        try:
            while not self._stop_event.is_set():
                step = await self.poll_once()
                delay = self._error_recovery if step is None else self._polling_cycle
                await self._sleep(delay)
        finally:
            self._running = False
            logger.info("Poll loop stopped")

    def stop(self) -> None:
        """Ask the polling loop to finish after the current cycle."""
        self._stop_event.set()

    async def _sleep(self, delay: float) -> None:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    async def poll_once(self) -> Optional[StepResult]:
        """
        Run one polling cycle without the trailing delay.

        Returns:
            Step result, or None if the status could not be read.

        Raises:
            DeviceFault: The acceptor reported a fatal fault.
        """
        result = await self._link.request_status()

        if isinstance(result, CommFailure):
            logger.warning(f"COMMUNICATION ERROR: {result}")
            await self._emit_event(
                EventType.COMM_FAILURE,
                AcceptorEvent(
                    session_state=self.session_state,
                    description=str(result),
                ),
            )
            return None

        return await self.process_status(result)

    async def process_status(self, response: StatusResponse) -> StepResult:
        """
        Feed one decoded status into the state machine and act on it.

        Args:
            response: Decoded status reply.

        Returns:
            Step result.

        Raises:
            DeviceFault: The acceptor reported a fatal fault.
        """
        if response.is_failure and not self._state_machine.is_recoverable_fault(
            response.status_code
        ):
            await self._raise_fault(response)

        step = self._state_machine.advance(response.status_code, response.note_code)

        # Device commands go out before any callback runs
        await self._perform(step)

        if step.changed:
            await self._emit_event(
                EventType.STATE_CHANGED,
                AcceptorEvent(
                    session_state=step.current_state,
                    previous_state=step.previous_state,
                    status_code=step.status_code,
                ),
            )

        if self._verbose:
            counts, total = self._ledger.get()
            logger.info(f"Current cash total: {total} {counts}")

        return step

    async def _raise_fault(self, response: StatusResponse) -> None:
        description = response.fault_description or response.status_name
        sub_code = response.sub_code if response.status_code == DeviceStatus.FAILURE else None
        logger.error(f"Device fault: {description}")
        await self._emit_event(
            EventType.DEVICE_FAULT,
            AcceptorEvent(
                session_state=self.session_state,
                status_code=response.status_code,
                description=description,
            ),
        )
        raise DeviceFault(
            description,
            status_code=response.status_code,
            sub_code=sub_code,
            device_name=self._port,
        )

    async def _perform(self, step: StepResult) -> None:
        event = AcceptorEvent(
            session_state=step.current_state,
            previous_state=step.previous_state,
            status_code=step.status_code,
            amount=step.note_value or 0,
        )

        if step.action is Action.STACK:
            logger.info(f"Bill in escrow: {step.note_value}")
            await self._link.send_command(CommandName.STACK)
            await self._emit_event(EventType.BILL_ESCROW, event)

        elif step.action is Action.RETURN:
            await self._link.send_command(CommandName.RETURN)
            await self._emit_event(EventType.BILL_RETURNED, event)

        elif step.action is Action.CREDIT:
            if step.note_value is not None:
                self._ledger.credit(step.note_value)
                logger.info(f"Bill stacked: {step.note_value}")
            await self._link.send_command(CommandName.ACKNOWLEDGE)
            if step.note_value is not None:
                await self._emit_event(EventType.BILL_STACKED, event)

        elif step.action is Action.ENABLE:
            await self.enable(reset_if_just_powered=False)

        elif step.action is Action.ENABLE_WITH_RESET:
            await self.enable(reset_if_just_powered=True)
            await self._emit_event(EventType.POWER_RECOVERY, event)

        elif step.changed and step.current_state is SessionState.REJECTING:
            await self._emit_event(EventType.BILL_REJECTED, event)

        elif step.changed and step.current_state is SessionState.JAM_IN_ACCEPTOR:
            await self._emit_event(EventType.BILL_JAMMED, event)

    # -------------------------------------------------------------------------
    # Ledger
    # -------------------------------------------------------------------------

    def get_accepted_cash(self) -> tuple[dict[int, int], int]:
        """
        Get accepted notes.

        Returns:
            (denomination -> count snapshot, total value).
        """
        return self._ledger.get()

    def set_accepted_cash(self, preset: Mapping[int, int]) -> None:
        """Replace the ledger contents; unknown denominations are ignored."""
        self._ledger.preset(preset)

    def reset_accepted_cash(self) -> None:
        """Zero the ledger."""
        self._ledger.reset()
