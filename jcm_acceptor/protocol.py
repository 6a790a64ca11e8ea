"""
ID003 Link Session.

Runs one request/response exchange at a time over the transport port.
Every exchange opens the port, works, and closes it again, all under a
single lock.

Expected communication problems are returned as CommFailure values
instead of being raised; the polling loop treats them as "device state
unknown this cycle".
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional

from .catalog import (
    CommandName,
    describe_fault,
    get_command_frame,
    get_status_name,
    is_failure_status,
    parse_status,
)
from .constants import (
    SYNC_BYTE,
    MIN_FRAME_LENGTH,
    MAX_FRAME_LENGTH,
    READ_TIMEOUT_S,
    WRITE_TIMEOUT_S,
    STATUS_RETRY_WINDOW_S,
    DeviceStatus,
)
from .exceptions import (
    FrameCRCError,
    FrameFormatError,
    TransportError,
    TransportTimeoutError,
)
from .transport import ID003Frame, TransportPort, decode_frame, format_hex


logger = logging.getLogger(__name__)


class CommFailureReason(Enum):
    """Why a link exchange produced no usable status."""
    TIMEOUT = auto()           # Retry window exhausted without a reply
    DEVICE_REPORTED = auto()   # Acceptor kept answering COMMUNICATION ERROR
    CRC_MISMATCH = auto()
    INVALID_FRAME = auto()
    WRITE_FAILED = auto()
    PORT_UNAVAILABLE = auto()
    LINK_ERROR = auto()


@dataclass(frozen=True)
class CommFailure:
    """
    Result of a status request that could not determine the device state.

    Attributes:
        reason: Failure category.
        detail: Human-readable detail for logs.
    """
    reason: CommFailureReason
    detail: str = ''

    def __str__(self) -> str:
        if self.detail:
            return f"{self.reason.name}: {self.detail}"
        return self.reason.name


@dataclass(frozen=True)
class StatusResponse:
    """
    Decoded reply to STATUS_REQUEST.

    Attributes:
        status_code: Raw status byte.
        data: Bytes following the status (note code or failure sub-code).
        raw: Complete frame as received.
    """
    status_code: int
    data: bytes = b''
    raw: bytes = b''

    @property
    def status(self) -> Optional[DeviceStatus]:
        """Status as enum, or None for codes this controller does not know."""
        return parse_status(self.status_code)

    @property
    def status_name(self) -> str:
        """Get human-readable status name."""
        return get_status_name(self.status_code)

    @property
    def sub_code(self) -> Optional[int]:
        """First data byte (note code in ESCROW, sub-code in FAILURE)."""
        if len(self.data) > 0:
            return self.data[0]
        return None

    note_code = sub_code

    @property
    def is_failure(self) -> bool:
        return is_failure_status(self.status_code)

    @property
    def fault_description(self) -> Optional[str]:
        return describe_fault(self.status_code, self.sub_code)

    @classmethod
    def from_frame(cls, frame: ID003Frame, raw: bytes = b'') -> 'StatusResponse':
        return cls(status_code=frame.command, data=frame.data, raw=raw)


class LinkSession:
    """
    Serialized request/response exchanges with the acceptor.

    Attributes:
        port: Underlying transport port.
        read_timeout: Per-read timeout in seconds.
        write_timeout: Per-write timeout in seconds.
        retry_window: Default wall-clock window for status retries.
    """

    def __init__(
        self,
        port: TransportPort,
        read_timeout: float = READ_TIMEOUT_S,
        write_timeout: float = WRITE_TIMEOUT_S,
        retry_window: float = STATUS_RETRY_WINDOW_S,
        verbose: bool = False,
    ) -> None:
        """
        Initialize the link session.

        Args:
            port: Transport port to the acceptor.
            read_timeout: Per-read timeout in seconds.
            write_timeout: Per-write timeout in seconds.
            retry_window: Default status retry window in seconds.
            verbose: Log frame dumps at INFO instead of DEBUG.
        """
        self._port = port
        self._read_timeout = read_timeout
        self._write_timeout = write_timeout
        self._retry_window = retry_window
        self._dump_level = logging.INFO if verbose else logging.DEBUG
        self._lock = asyncio.Lock()

    @property
    def port(self) -> TransportPort:
        return self._port

    @property
    def read_timeout(self) -> float:
        return self._read_timeout

    @property
    def write_timeout(self) -> float:
        return self._write_timeout

    @property
    def retry_window(self) -> float:
        return self._retry_window

    async def request_status(
        self,
        timeout: Optional[float] = None,
    ) -> StatusResponse | CommFailure:
        """
        Send STATUS_REQUEST and read the reply.

        Read timeouts and COMMUNICATION ERROR replies re-send the request
        until ``timeout`` seconds have passed since the first write. CRC
        mismatches and malformed frames fail immediately.

        Args:
            timeout: Retry window in seconds (default: session retry_window).

        Returns:
            Decoded status, or CommFailure.
        """
        window = self._retry_window if timeout is None else timeout

        async with self._lock:
            try:
                await self._port.open()
            except TransportError as e:
                logger.error(f"Cannot open port for status request: {e}")
                await self._port.close()
                return CommFailure(CommFailureReason.PORT_UNAVAILABLE, str(e))

            try:
                return await self._exchange_status(window)
            finally:
                await self._port.close()

    async def _exchange_status(self, window: float) -> StatusResponse | CommFailure:
        command = get_command_frame(CommandName.STATUS_REQUEST)
        deadline = time.monotonic() + window
        attempts = 0
        failure: Optional[CommFailure] = None

        while True:
            # The first request is always sent, even with an empty window
            if failure is not None and time.monotonic() >= deadline:
                logger.warning(
                    f"Status request failed after {attempts} attempt(s): {failure}"
                )
                return failure

            attempts += 1
            try:
                await self._write(command, deadline)
            except TransportError as e:
                logger.error(f"Failed to send status request: {e}")
                return CommFailure(CommFailureReason.WRITE_FAILED, str(e))

            try:
                frame, raw = await self._read_frame(deadline)
            except TransportTimeoutError as e:
                # Running out of window keeps the reason of the last reply
                if failure is None or time.monotonic() < deadline:
                    failure = CommFailure(CommFailureReason.TIMEOUT, str(e))
            except FrameCRCError as e:
                logger.warning(f"Status reply rejected: {e.message} {e.details}")
                return CommFailure(CommFailureReason.CRC_MISMATCH, e.message)
            except FrameFormatError as e:
                logger.warning(f"Status reply rejected: {e.message}")
                return CommFailure(CommFailureReason.INVALID_FRAME, e.message)
            except TransportError as e:
                logger.error(f"Link error while reading status: {e}")
                return CommFailure(CommFailureReason.LINK_ERROR, str(e))
            else:
                response = StatusResponse.from_frame(frame, raw)
                if response.status_code != DeviceStatus.COMMUNICATION_ERROR:
                    return response
                failure = CommFailure(
                    CommFailureReason.DEVICE_REPORTED,
                    "Acceptor reported COMMUNICATION FAILURE",
                )

            logger.debug(f"Retrying status request ({failure})")

    async def _read_frame(self, deadline: float) -> tuple[ID003Frame, bytes]:
        for _ in range(MAX_FRAME_LENGTH):
            byte_data = await self._read(1, deadline)
            if byte_data[0] == SYNC_BYTE:
                break
            logger.debug(f"Skipping byte: 0x{byte_data[0]:02X}")
        else:
            raise FrameFormatError("SYNC byte not found")

        length = (await self._read(1, deadline))[0]
        if length < MIN_FRAME_LENGTH or length > MAX_FRAME_LENGTH:
            raise FrameFormatError(f"Invalid frame length: {length}")

        remaining = await self._read(length - 2, deadline)
        raw = bytes([SYNC_BYTE, length]) + remaining
        logger.log(self._dump_level, f"RX: {format_hex(raw)}")

        return decode_frame(raw), raw

    async def _read(self, size: int, deadline: float) -> bytes:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise TransportTimeoutError("Status retry window exhausted")
        return await self._port.read(size, min(self._read_timeout, remaining))

    async def _write(self, data: bytes, deadline: Optional[float] = None) -> None:
        timeout = self._write_timeout
        if deadline is not None:
            timeout = max(0.0, min(timeout, deadline - time.monotonic()))
        logger.log(self._dump_level, f"TX: {format_hex(data)}")
        await self._port.write(data, timeout)

    async def send_command(self, name: CommandName | str) -> bool:
        """
        Write a catalog command frame.

        Write failures are reported, not retried; the next polling cycle
        re-establishes the device state.

        Args:
            name: Command name.

        Returns:
            True if the frame was written.
        """
        frame = get_command_frame(name)
        command = CommandName(name)

        async with self._lock:
            try:
                await self._port.open()
                await self._write(frame)
            except TransportError as e:
                logger.error(f"Failed to send {command.value}: {e}")
                return False
            finally:
                await self._port.close()

        logger.debug(f"Sent {command.value}")
        return True
