"""
Frame builder and parser for the reader's serial-over-TCP protocol.

Frame layout::

    +-----+----------+------+--------+-----------------+----------+-----+
    | STX | ReaderId | 0xFF | Length |     Payload     |   BCC    | ETX |
    | 02  |  1 byte  |      | 1 byte | Length - 3 bytes| 2 ASCII  | 03  |
    +-----+----------+------+--------+-----------------+----------+-----+

- Length: payload length + 3
- BCC: XOR of every byte from STX through the last payload byte, written as
  two uppercase hex characters
"""
from typing import Dict, Iterable, Optional, Tuple

from emulator.exceptions import (
    ChecksumMismatchError,
    FrameError,
    MissingFrameEndError,
    MissingFrameStartError,
    PayloadTooLargeError,
    TruncatedFrameError,
)

STX = 0x02
ETX = 0x03
ADDRESS_MARKER = 0xFF
HEADER_SIZE = 4  # STX + reader id + marker + length
LENGTH_OFFSET = 3  # length byte counts reader id, marker and itself
MAX_PAYLOAD_SIZE = 0xFF - LENGTH_OFFSET


def xor_bytes(data: Iterable[int]) -> int:
    """XOR all bytes together; an empty span yields 0."""
    result = 0
    for value in data:
        result ^= value
    return result


def compute_bcc(data: bytes) -> bytes:
    """Return the two-character uppercase hex BCC of ``data``."""
    return f"{xor_bytes(data):02X}".encode("ascii")


def announced_end(buffer: bytes, start: int) -> Optional[int]:
    """Index of the ETX announced by the header whose STX sits at ``start``.

    None when the header is incomplete or the address marker is missing.
    """
    if start + 3 >= len(buffer) or buffer[start + 2] != ADDRESS_MARKER:
        return None
    return start + buffer[start + 3] + LENGTH_OFFSET


def ends_where_announced(buffer: bytes, start: int) -> bool:
    end = announced_end(buffer, start)
    return end is not None and end < len(buffer) and buffer[end] == ETX


def _locate(buffer: bytes) -> Tuple[int, int, int]:
    """Find a frame inside ``buffer``.

    Returns ``(start, etx, length)`` where ``start`` indexes the STX that
    begins the header, ``etx`` indexes the closing ETX and ``length`` is the
    value of the length byte. A second STX straight after the first is
    skipped as a duplicate unless the first one already heads a frame whose
    length byte points at an ETX (reader id 0x02).
    """
    start = buffer.find(bytes([STX]))
    if start == -1:
        raise MissingFrameStartError("No STX in frame")
    if (
        start + 1 < len(buffer)
        and buffer[start + 1] == STX
        and not ends_where_announced(buffer, start)
    ):
        start += 1

    etx = buffer.rfind(bytes([ETX]), start + 1)
    if etx == -1:
        raise MissingFrameEndError("No ETX after STX", {"start": start})

    if start + HEADER_SIZE > etx:
        raise TruncatedFrameError("Frame header incomplete", {"start": start, "end": etx})
    length = buffer[start + 3]
    if length < LENGTH_OFFSET:
        raise TruncatedFrameError(f"Length byte {length} below minimum", {"length": length})

    # payload ends before the two BCC characters that precede ETX
    payload_end = start + HEADER_SIZE + length - LENGTH_OFFSET
    if payload_end + 2 > etx:
        raise TruncatedFrameError(
            "Frame shorter than its length byte",
            {"length": length, "start": start, "end": etx},
        )
    return start, etx, length


def encode_frame(payload: bytes, reader_id: int) -> bytes:
    """Wrap ``payload`` in a frame addressed from ``reader_id``."""
    if len(payload) > MAX_PAYLOAD_SIZE:
        raise PayloadTooLargeError(
            f"Payload of {len(payload)} bytes exceeds {MAX_PAYLOAD_SIZE}",
            {"size": len(payload)},
        )
    if not 0 <= reader_id <= 0xFF:
        raise ValueError(f"reader_id must fit in one byte, got {reader_id}")

    body = bytes([STX, reader_id, ADDRESS_MARKER, len(payload) + LENGTH_OFFSET]) + payload
    return body + compute_bcc(body) + bytes([ETX])


def decode_frame(buffer: bytes) -> bytes:
    """Return the payload carried by the frame in ``buffer``.

    Structure only; the BCC is checked by :func:`validate_frame`.
    """
    start, _, length = _locate(buffer)
    payload_start = start + HEADER_SIZE
    return bytes(buffer[payload_start:payload_start + length - LENGTH_OFFSET])


def verify_frame(frame: bytes) -> None:
    """Raise a :class:`FrameError` subclass unless ``frame`` is well-formed."""
    start, _, length = _locate(frame)
    payload_end = start + HEADER_SIZE + length - LENGTH_OFFSET
    expected = compute_bcc(frame[start:payload_end])
    actual = bytes(frame[payload_end:payload_end + 2])
    if actual.upper() != expected:
        raise ChecksumMismatchError(
            "BCC mismatch",
            expected=expected.decode("ascii"),
            actual=actual.decode("ascii", errors="replace"),
        )


def validate_frame(frame: bytes) -> bool:
    """True when ``frame`` has both delimiters, a sane length and a matching BCC."""
    try:
        verify_frame(frame)
    except FrameError:
        return False
    return True


class FrameCodec:
    """Encodes and decodes frames for one reader id.

    Fixed responses are framed once up front and served from a cache.
    """

    def __init__(self, reader_id: int, precomputed: Iterable[bytes] = ()):
        if not 0 <= reader_id <= 0xFF:
            raise ValueError(f"reader_id must fit in one byte, got {reader_id}")
        self.reader_id = reader_id
        self._cache: Dict[bytes, bytes] = {
            payload: encode_frame(payload, reader_id) for payload in precomputed
        }

    def encode(self, payload: bytes) -> bytes:
        cached = self._cache.get(payload)
        if cached is not None:
            return cached
        return encode_frame(payload, self.reader_id)

    def decode(self, frame: bytes) -> bytes:
        return decode_frame(frame)

    def validate(self, frame: bytes) -> bool:
        return validate_frame(frame)

    def verify(self, frame: bytes) -> None:
        verify_frame(frame)
