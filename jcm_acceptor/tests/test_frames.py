"""
Unit tests for the ID003 frame codec and command catalog.
"""

import pytest

from jcm_acceptor.catalog import (
    COMMAND_FRAMES,
    CommandName,
    describe_fault,
    get_command_frame,
    get_denomination,
    get_status_name,
    is_failure_status,
    parse_status,
)
from jcm_acceptor.constants import (
    BILL_DENOMINATIONS,
    CRC_POLYNOMIAL,
    SYNC_BYTE,
    Command,
    DeviceStatus,
    FailureCode,
)
from jcm_acceptor.crc import append_crc, calculate_crc16, verify_crc16
from jcm_acceptor.exceptions import FrameCRCError, FrameError, FrameFormatError
from jcm_acceptor.transport import ID003Frame, decode_frame, encode_frame


class TestCRC:
    """Tests for the nibble CRC16."""

    def test_crc16_status_request(self):
        """Status request frame carries 27 56."""
        assert calculate_crc16(bytes([0xFC, 0x05, 0x11])) == bytes([0x27, 0x56])

    def test_crc16_ack(self):
        assert calculate_crc16(bytes([0xFC, 0x05, 0x50])) == bytes([0xAA, 0x05])

    def test_crc16_reset(self):
        assert calculate_crc16(bytes([0xFC, 0x05, 0x40])) == bytes([0x2B, 0x15])

    def test_crc16_empty(self):
        assert calculate_crc16(b'') == b'\x00\x00'

    def test_verify_valid(self):
        assert verify_crc16(bytes([0xFC, 0x05, 0x11, 0x27, 0x56])) is True

    def test_verify_invalid(self):
        assert verify_crc16(bytes([0xFC, 0x05, 0x11, 0x56, 0x27])) is False

    def test_verify_too_short(self):
        assert verify_crc16(bytes([0xFC, 0x05, 0x11])) is False

    def test_append_crc(self):
        result = append_crc(bytes([0xFC, 0x06, 0xC3, 0x00]))
        assert len(result) == 6
        assert verify_crc16(result)

    def test_crc_polynomial(self):
        assert CRC_POLYNOMIAL == 0x1081


class TestFrameCodec:
    """Tests for frame encoding and decoding."""

    @pytest.mark.parametrize("payload", [
        bytes([0x11]),
        bytes([0x13, 0x62]),
        bytes([0x49, 0xA2]),
        bytes([0xC3, 0x01]),
        bytes(range(0x20, 0x40)),
    ])
    def test_round_trip(self, payload):
        frame = decode_frame(encode_frame(payload))
        assert frame.payload == payload

    def test_encode_layout(self):
        raw = encode_frame(bytes([0x13, 0x62]))

        assert raw[0] == SYNC_BYTE
        assert raw[1] == len(raw) == 6
        assert raw[2] == 0x13
        assert raw[3] == 0x62
        assert verify_crc16(raw)

    def test_encode_empty_payload(self):
        with pytest.raises(ValueError):
            encode_frame(b'')

    def test_every_single_bit_flip_is_a_crc_mismatch(self):
        raw = encode_frame(bytes([0x13, 0x62]))

        for index in range(len(raw)):
            for bit in range(8):
                corrupted = bytearray(raw)
                corrupted[index] ^= 1 << bit
                with pytest.raises(FrameCRCError):
                    decode_frame(bytes(corrupted))

    def test_decode_too_short(self):
        with pytest.raises(FrameFormatError):
            decode_frame(bytes([0xFC, 0x05, 0x11]))

    def test_decode_wrong_sync(self):
        raw = append_crc(bytes([0x02, 0x05, 0x11]))
        with pytest.raises(FrameFormatError):
            decode_frame(raw)

    def test_decode_length_mismatch(self):
        raw = append_crc(bytes([0xFC, 0x07, 0x11]))
        with pytest.raises(FrameFormatError):
            decode_frame(raw)

    def test_frame_errors_share_base(self):
        assert issubclass(FrameCRCError, FrameError)
        assert issubclass(FrameFormatError, FrameError)

    def test_frame_properties(self):
        frame = ID003Frame(command=DeviceStatus.ESCROW, data=bytes([0x62]))

        assert frame.length == 6
        assert frame.payload == bytes([0x13, 0x62])
        assert ID003Frame.from_bytes(frame.to_bytes()) == frame


class TestCommandCatalog:
    """Tests for the static command and status tables."""

    @pytest.mark.parametrize("name, expected", [
        (CommandName.STATUS_REQUEST, "fc05112756"),
        (CommandName.ACKNOWLEDGE, "fc0550aa05"),
        (CommandName.RESET, "fc05402b15"),
    ])
    def test_known_frames(self, name, expected):
        assert get_command_frame(name).hex() == expected

    @pytest.mark.parametrize("name, prefix", [
        (CommandName.INHIBIT_ENABLE, bytes([0xFC, 0x06, 0xC3, 0x01])),
        (CommandName.INHIBIT_DISABLE, bytes([0xFC, 0x06, 0xC3, 0x00])),
        (CommandName.STACK, bytes([0xFC, 0x05, 0x41])),
        (CommandName.RETURN, bytes([0xFC, 0x05, 0x43])),
    ])
    def test_frame_contents(self, name, prefix):
        frame = get_command_frame(name)

        assert frame[:-2] == prefix
        assert verify_crc16(frame)

    def test_lookup_by_string(self):
        assert get_command_frame("Stack") == COMMAND_FRAMES[CommandName.STACK]

    def test_lookup_unknown(self):
        with pytest.raises(KeyError):
            get_command_frame("Dispense")

    def test_catalog_is_read_only(self):
        with pytest.raises(TypeError):
            COMMAND_FRAMES[CommandName.STACK] = b''

    def test_status_request_shares_idling_opcode(self):
        assert Command.STATUS_REQUEST == DeviceStatus.IDLING

    def test_parse_status(self):
        assert parse_status(0x13) is DeviceStatus.ESCROW
        assert parse_status(0x99) is None

    def test_status_names(self):
        assert get_status_name(DeviceStatus.IDLING) == "ENABLE (IDLING)"
        assert get_status_name(DeviceStatus.JAM_IN_ACCEPTOR) == "JAM IN ACCEPTOR"
        assert get_status_name(None) == "UNKNOWN"
        assert "UNKNOWN" in get_status_name(0x99)

    def test_failure_category(self):
        assert is_failure_status(DeviceStatus.STACKER_FULL)
        assert is_failure_status(DeviceStatus.INVALID_COMMAND)
        assert not is_failure_status(DeviceStatus.POWER_UP_BILL_STACKER)
        assert not is_failure_status(DeviceStatus.INHIBIT)

    def test_describe_fault(self):
        assert describe_fault(DeviceStatus.STACKER_FULL) == "STACKER FULL"
        assert describe_fault(DeviceStatus.IDLING) is None

    def test_describe_failure_sub_code(self):
        assert describe_fault(DeviceStatus.FAILURE, FailureCode.STACK_MOTOR) == "STACK MOTOR FAILURE"
        assert describe_fault(DeviceStatus.FAILURE, FailureCode.RAM) == "RAM FAILURE"

    def test_describe_failure_without_or_unknown_sub_code(self):
        assert describe_fault(DeviceStatus.FAILURE) == "UNKNOWN FAILURE"
        assert describe_fault(DeviceStatus.FAILURE, 0x01) == "UNKNOWN FAILURE"

    def test_sub_code_ignored_for_other_faults(self):
        assert describe_fault(DeviceStatus.JAM_IN_STACKER, 0xA2) == "JAM IN STACKER"

    def test_denominations(self):
        assert get_denomination(0x61) == 10
        assert get_denomination(0x62) == 20
        assert get_denomination(0x68) == 2000
        assert get_denomination(0x70) is None
        assert get_denomination(None) is None
        assert sorted(BILL_DENOMINATIONS.values()) == [10, 20, 50, 100, 200, 500, 1000, 2000]
