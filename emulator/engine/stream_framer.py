"""
Stream Framer - Cuts a TCP byte stream into STX..ETX frames.

Frames may arrive split across reads or several to a read; the buffer keeps
unconsumed bytes between reads and only hands out complete spans.
"""
import asyncio
from typing import Optional

import structlog

from emulator.engine.frame_codec import ETX, STX, announced_end
from emulator.exceptions import TransportError

logger = structlog.get_logger()


class FrameBuffer:
    """Accumulates stream bytes and yields complete frames."""

    def __init__(self):
        self._buffer = bytearray()
        self._consumed = 0

    @property
    def pending(self) -> int:
        """Bytes received but not yet handed out as a frame."""
        return len(self._buffer) - self._consumed

    def feed(self, data: bytes) -> None:
        if self._consumed:
            del self._buffer[:self._consumed]
            self._consumed = 0
        self._buffer.extend(data)

    def next_frame(self) -> Optional[bytes]:
        """Return the next complete frame, or None until more data arrives.

        The frame ends at the ETX its length byte announces, so a reader id of
        0x03 does not cut it short. When the header is unreadable, or the
        announced byte is not an ETX, the first ETX after the STX ends it.
        """
        start = self._buffer.find(STX, self._consumed)
        if start == -1:
            # nothing here can become a frame
            self._consumed = len(self._buffer)
            return None

        waiting = False
        # header may follow a duplicated STX
        for header in (start, start + 1):
            if header > start and self._buffer[header:header + 1] != bytes([STX]):
                break
            if header + 3 >= len(self._buffer):
                waiting = True
                continue
            end = announced_end(self._buffer, header)
            if end is None:
                continue
            if end >= len(self._buffer):
                waiting = True
            elif self._buffer[end] == ETX:
                return self._take(start, end)

        if waiting:
            self._consumed = start
            return None

        end = self._buffer.find(ETX, start)
        if end == -1:
            self._consumed = start
            return None
        return self._take(start, end)

    def _take(self, start: int, end: int) -> bytes:
        frame = bytes(self._buffer[start:end + 1])
        self._consumed = end + 1
        return frame


class StreamFramer:
    """Reads frames from and writes frames to one client connection."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        read_size: int = 4096,
    ):
        self.reader = reader
        self.writer = writer
        self.read_size = read_size
        self._frames = FrameBuffer()

    async def next_frame(self) -> Optional[bytes]:
        """Wait for the next complete frame; None once the peer closes."""
        while True:
            frame = self._frames.next_frame()
            if frame is not None:
                return frame

            try:
                data = await self.reader.read(self.read_size)
            except OSError as e:
                raise TransportError(f"Read failed: {e}", details={"error": str(e)})

            if not data:
                if self._frames.pending:
                    logger.debug("partial_frame_discarded", pending_bytes=self._frames.pending)
                return None
            self._frames.feed(data)

    async def write_frame(self, frame: bytes) -> None:
        try:
            self.writer.write(frame)
            await self.writer.drain()
        except OSError as e:
            raise TransportError(
                f"Write failed: {e}",
                details={"error": str(e), "data_size": len(frame)},
            )
