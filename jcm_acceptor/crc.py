"""
CRC16 Calculation for the JCM ID003 Protocol.

The acceptor uses a reflected CRC-16 with polynomial 0x1081 applied four
bits at a time. Each input byte is folded in as two nibbles, low nibble
first. The register is byte-swapped before it is split, which leaves the
low byte of the register first on the wire.
"""

from .constants import CRC_POLYNOMIAL, MIN_FRAME_LENGTH


def _crc_register(data: bytes) -> int:
    crc = 0
    for byte in data:
        q = (crc ^ byte) & 0x0F
        crc = (crc >> 4) ^ (q * CRC_POLYNOMIAL)
        q = (crc ^ (byte >> 4)) & 0x0F
        crc = (crc >> 4) ^ (q * CRC_POLYNOMIAL)
    return crc & 0xFFFF


def calculate_crc16(data: bytes) -> bytes:
    """
    Calculate the ID003 CRC16 checksum.

    Args:
        data: Bytes to calculate CRC for (excluding CRC bytes).

    Returns:
        2-byte CRC in wire order (CRC-LO, CRC-HI).

    Example:
        >>> calculate_crc16(bytes([0xFC, 0x05, 0x11])).hex()
        '2756'
    """
    crc = _crc_register(data)
    swapped = ((crc & 0xFF) << 8) | (crc >> 8)
    return swapped.to_bytes(2, byteorder='big')


def verify_crc16(frame: bytes) -> bool:
    """
    Verify the trailing CRC of a complete ID003 frame.

    Args:
        frame: Complete frame including CRC bytes.

    Returns:
        True if CRC is valid, False otherwise.
    """
    if len(frame) < MIN_FRAME_LENGTH:
        return False
    return calculate_crc16(frame[:-2]) == bytes(frame[-2:])


def append_crc(data: bytes) -> bytes:
    """Append CRC16 checksum to data."""
    return bytes(data) + calculate_crc16(data)
