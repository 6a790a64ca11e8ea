"""
ID003 Transport Layer.

Handles frame construction, CRC validation and serial I/O.

Frame Structure:
    SYNC (0xFC) | LNG | CMD | DATA | CRC (2 bytes)

Where:
    - SYNC: Start of frame marker (always 0xFC)
    - LNG: Total frame length including SYNC, LNG, CMD, DATA, CRC
    - CMD: Command byte (or status byte in replies)
    - DATA: Optional data bytes (note code, failure sub-code, ...)
    - CRC: CRC16 checksum (2 bytes, low byte first)
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import serial
import serial_asyncio

from .constants import (
    SYNC_BYTE,
    DEFAULT_BAUDRATE,
    MIN_FRAME_LENGTH,
    MAX_FRAME_LENGTH,
)
from .crc import calculate_crc16
from .exceptions import (
    FrameCRCError,
    FrameFormatError,
    TransportError,
    TransportTimeoutError,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ID003Frame:
    """
    Represents an ID003 protocol frame.

    Attributes:
        command: Command byte (status byte for acceptor replies).
        data: Optional data bytes.
    """
    command: int
    data: bytes = b''

    @property
    def length(self) -> int:
        """Calculate total frame length."""
        # SYNC(1) + LNG(1) + CMD(1) + DATA(n) + CRC(2)
        return MIN_FRAME_LENGTH + len(self.data)

    @property
    def payload(self) -> bytes:
        """Command byte followed by data bytes."""
        return bytes([self.command]) + self.data

    def to_bytes(self) -> bytes:
        """
        Serialize frame to bytes with CRC.

        Returns:
            Complete frame bytes ready to send.
        """
        frame = bytes([SYNC_BYTE, self.length, self.command]) + self.data
        return frame + calculate_crc16(frame)

    @classmethod
    def from_bytes(cls, data: bytes) -> 'ID003Frame':
        """
        Parse and validate a frame from received bytes.

        Args:
            data: Raw bytes received from device.

        Returns:
            Parsed frame.

        Raises:
            FrameFormatError: Truncated frame or bad SYNC/LNG header.
            FrameCRCError: Trailing CRC does not match the frame contents.
        """
        if len(data) < MIN_FRAME_LENGTH:
            raise FrameFormatError(f"Frame too short: {len(data)} bytes")

        # CRC covers SYNC and LNG too, so it is checked first
        expected = calculate_crc16(data[:-2])
        received = bytes(data[-2:])
        if expected != received:
            raise FrameCRCError(
                "CRC mismatch",
                expected=expected,
                received=received,
            )

        if data[0] != SYNC_BYTE:
            raise FrameFormatError(f"Invalid SYNC byte: 0x{data[0]:02X}")

        if data[1] != len(data):
            raise FrameFormatError(
                f"Length mismatch: header says {data[1]}, got {len(data)} bytes"
            )

        return cls(command=data[2], data=bytes(data[3:-2]))


def encode_frame(payload: bytes) -> bytes:
    """
    Wrap a command payload (opcode plus arguments) into a wire frame.

    Args:
        payload: Command byte followed by optional data bytes.

    Returns:
        SYNC, LNG, payload and CRC.
    """
    if not payload:
        raise ValueError("Payload must contain at least a command byte")
    return ID003Frame(command=payload[0], data=bytes(payload[1:])).to_bytes()


def decode_frame(frame: bytes) -> ID003Frame:
    """Validate a complete wire frame and return its contents."""
    return ID003Frame.from_bytes(frame)


def format_hex(data: bytes) -> str:
    """Format bytes as a space separated HEX dump."""
    return ' '.join(f'{b:02X}' for b in data)


class TransportPort(ABC):
    """
    Byte-stream link to the acceptor.

    The link session opens the port for every exchange and always closes
    it afterwards.
    """

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """Check if the port is open."""
        ...

    @abstractmethod
    async def open(self) -> None:
        """
        Open the port.

        Raises:
            TransportError: Port could not be opened.
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the port. Must not raise."""
        ...

    @abstractmethod
    async def read(self, size: int, timeout: float) -> bytes:
        """
        Read exactly ``size`` bytes.

        Raises:
            TransportTimeoutError: Bytes did not arrive within ``timeout``.
            TransportError: Link failure.
        """
        ...

    @abstractmethod
    async def write(self, data: bytes, timeout: float) -> None:
        """
        Write all of ``data``.

        Raises:
            TransportTimeoutError: Write did not drain within ``timeout``.
            TransportError: Link failure.
        """
        ...


class SerialTransportPort(TransportPort):
    """
    Serial port transport using pyserial-asyncio.

    ID003 runs at 9600 baud, 8 data bits, even parity, 1 stop bit.
    """

    def __init__(
        self,
        port: str,
        baudrate: int = DEFAULT_BAUDRATE,
        bytesize: int = serial.EIGHTBITS,
        parity: str = serial.PARITY_EVEN,
        stopbits: float = serial.STOPBITS_ONE,
    ) -> None:
        self._port = port
        self._baudrate = baudrate
        self._bytesize = bytesize
        self._parity = parity
        self._stopbits = stopbits
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None

    @property
    def port(self) -> str:
        """Get serial port path."""
        return self._port

    @property
    def baudrate(self) -> int:
        """Get serial baudrate."""
        return self._baudrate

    @property
    def bytesize(self) -> int:
        return self._bytesize

    @property
    def parity(self) -> str:
        return self._parity

    @property
    def stopbits(self) -> float:
        return self._stopbits

    @property
    def is_open(self) -> bool:
        return self._writer is not None

    async def open(self) -> None:
        if self.is_open:
            return
        try:
            self._reader, self._writer = await serial_asyncio.open_serial_connection(
                url=self._port,
                baudrate=self._baudrate,
                bytesize=self._bytesize,
                parity=self._parity,
                stopbits=self._stopbits,
            )
        except (serial.SerialException, OSError) as e:
            raise TransportError(
                f"Cannot open {self._port}: {e}",
                device_name=self._port,
            ) from e

    async def close(self) -> None:
        writer = self._writer
        self._reader = None
        self._writer = None
        if writer is None:
            return
        writer.close()
        try:
            await writer.wait_closed()
        except Exception as e:
            logger.debug(f"Close error (ignored): {e}")

    async def read(self, size: int, timeout: float) -> bytes:
        if self._reader is None:
            raise TransportError("Port is not open", device_name=self._port)
        try:
            return await asyncio.wait_for(
                self._reader.readexactly(size),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise TransportTimeoutError(
                f"Read of {size} byte(s) timed out after {timeout:.3f}s",
                device_name=self._port,
            ) from e
        except asyncio.IncompleteReadError as e:
            raise TransportError(
                f"Link closed after {len(e.partial)} of {size} byte(s)",
                device_name=self._port,
            ) from e

    async def write(self, data: bytes, timeout: float) -> None:
        if self._writer is None:
            raise TransportError("Port is not open", device_name=self._port)
        try:
            self._writer.write(data)
            await asyncio.wait_for(self._writer.drain(), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise TransportTimeoutError(
                f"Write timed out after {timeout:.3f}s",
                device_name=self._port,
            ) from e
        except (serial.SerialException, OSError) as e:
            raise TransportError(
                f"Write failed: {e}",
                device_name=self._port,
            ) from e
