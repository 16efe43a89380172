"""Tests for frame building, parsing and BCC validation."""
import pytest

from emulator.engine.frame_codec import (
    ETX,
    MAX_PAYLOAD_SIZE,
    STX,
    FrameCodec,
    compute_bcc,
    decode_frame,
    encode_frame,
    validate_frame,
    verify_frame,
    xor_bytes,
)
from emulator.exceptions import (
    ChecksumMismatchError,
    MissingFrameEndError,
    MissingFrameStartError,
    PayloadTooLargeError,
    TruncatedFrameError,
)


class TestChecksum:
    def test_empty_span_is_zero(self):
        assert xor_bytes(b"") == 0x00
        assert compute_bcc(b"") == b"00"

    def test_known_value(self):
        # 02 ^ 96 ^ FF ^ 04 ^ 6F == 00
        assert compute_bcc(bytes([0x02, 0x96, 0xFF, 0x04, 0x6F])) == b"00"

    def test_uppercase_hex(self):
        assert compute_bcc(b"\xab") == b"AB"

    def test_single_bit_flip_changes_checksum(self):
        data = bytearray(b"\x02\x96\xff\x0ez00001")
        original = xor_bytes(data)
        for index in range(len(data)):
            for bit in range(8):
                flipped = bytearray(data)
                flipped[index] ^= 1 << bit
                assert xor_bytes(flipped) != original


class TestEncode:
    def test_ok_frame_bytes(self):
        assert encode_frame(b"o", 150) == bytes([0x02, 0x96, 0xFF, 0x04, 0x6F, 0x30, 0x30, 0x03])

    def test_length_byte_counts_header(self):
        frame = encode_frame(b"a00", 150)
        assert frame[0] == STX
        assert frame[1] == 150
        assert frame[2] == 0xFF
        assert frame[3] == len(b"a00") + 3
        assert frame[-1] == ETX

    def test_rejects_oversized_payload(self):
        with pytest.raises(PayloadTooLargeError):
            encode_frame(b"x" * (MAX_PAYLOAD_SIZE + 1), 150)

    def test_accepts_largest_payload(self):
        frame = encode_frame(b"x" * MAX_PAYLOAD_SIZE, 150)
        assert frame[3] == 0xFF

    def test_rejects_wide_reader_id(self):
        with pytest.raises(ValueError):
            encode_frame(b"o", 256)


class TestDecode:
    @pytest.mark.parametrize("reader_id", [0, 2, 3, 150, 255])
    @pytest.mark.parametrize("payload", [b"", b"o", b"\x0a", b"\x1fABCDEFGH01010124JOHN", b"y" * 252])
    def test_roundtrip(self, payload, reader_id):
        frame = encode_frame(payload, reader_id)
        assert decode_frame(frame) == payload
        assert validate_frame(frame) is True

    @pytest.mark.parametrize("reader_id", [0, 2, 3, 150, 255])
    def test_duplicated_leading_stx(self, reader_id):
        frame = encode_frame(b"\x16", reader_id)
        doubled = bytes([STX]) + frame
        assert decode_frame(doubled) == b"\x16"
        assert validate_frame(doubled) is True

    def test_reader_id_two_is_not_a_duplicate(self):
        frame = encode_frame(b"\x0a", 2)
        assert frame[:3] == b"\x02\x02\xff"
        assert decode_frame(frame) == b"\x0a"
        assert validate_frame(frame) is True

    def test_leading_garbage_ignored(self):
        frame = encode_frame(b"\xf8", 150)
        assert decode_frame(b"\x00\x41" + frame) == b"\xf8"

    def test_missing_start(self):
        with pytest.raises(MissingFrameStartError):
            decode_frame(b"\x96\xff\x04o00\x03")

    def test_missing_end(self):
        with pytest.raises(MissingFrameEndError):
            decode_frame(encode_frame(b"o", 150)[:-1])

    def test_length_below_minimum(self):
        frame = bytearray(encode_frame(b"o", 150))
        frame[3] = 2
        with pytest.raises(TruncatedFrameError):
            decode_frame(bytes(frame))

    def test_length_beyond_frame(self):
        frame = bytearray(encode_frame(b"o", 150))
        frame[3] = 40
        with pytest.raises(TruncatedFrameError):
            decode_frame(bytes(frame))


class TestValidate:
    def test_bad_checksum(self):
        frame = bytearray(encode_frame(b"o", 150))
        frame[-3:-1] = b"FF"
        assert validate_frame(bytes(frame)) is False
        with pytest.raises(ChecksumMismatchError) as excinfo:
            verify_frame(bytes(frame))
        assert excinfo.value.expected == "00"
        assert excinfo.value.actual == "FF"

    def test_corrupted_payload(self):
        frame = bytearray(encode_frame(b"z00001", 150))
        frame[5] ^= 0x01
        assert validate_frame(bytes(frame)) is False

    def test_lowercase_checksum_accepted(self):
        frame = bytearray(encode_frame(b"\x00", 0))
        assert bytes(frame[-3:-1]) == b"F9"
        frame[-3:-1] = b"f9"
        assert validate_frame(bytes(frame)) is True

    def test_structurally_broken_frame_is_invalid(self):
        assert validate_frame(b"") is False
        assert validate_frame(b"\x02\x96") is False


class TestFrameCodec:
    def test_precomputed_frames_are_reused(self):
        codec = FrameCodec(150, precomputed=[b"o"])
        assert codec.encode(b"o") is codec.encode(b"o")
        assert codec.encode(b"o") == encode_frame(b"o", 150)

    def test_uncached_payload(self):
        codec = FrameCodec(7)
        frame = codec.encode(b"z00000")
        assert frame[1] == 7
        assert codec.decode(frame) == b"z00000"
        assert codec.validate(frame)

    def test_invalid_reader_id(self):
        with pytest.raises(ValueError):
            FrameCodec(300)
