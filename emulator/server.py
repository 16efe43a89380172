"""
TCP listener for the reader emulator

Accepts one client at a time and serves it until the peer closes, just like
the physical terminal serves a single control-room link. The next client is
only accepted after the current one is done.
"""
import asyncio
import socket
from typing import Optional, Tuple

import structlog

from emulator.config import Settings
from emulator.engine.dispatcher import CommandDispatcher
from emulator.engine.stream_framer import StreamFramer
from emulator.exceptions import TransportError

logger = structlog.get_logger()


class ReaderServer:
    """Accept loop feeding client frames through a CommandDispatcher"""

    def __init__(
        self,
        settings: Settings,
        dispatcher: CommandDispatcher,
        backlog: int = 5,
        accept_retry_delay: float = 0.5,
    ):
        self.host = settings.ip
        self.port = settings.port
        self.reader_id = settings.reader_id
        self.dispatcher = dispatcher
        self.backlog = backlog
        self.accept_retry_delay = accept_retry_delay
        self.running = False
        self.server_socket: Optional[socket.socket] = None

    def start(self) -> None:
        """Bind the listening socket; port 0 picks a free port."""
        self.server_socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.server_socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self.server_socket.bind((self.host, self.port))
        self.server_socket.listen(self.backlog)
        self.server_socket.setblocking(False)
        self.port = self.server_socket.getsockname()[1]

        logger.info(
            "listening",
            host=self.host,
            port=self.port,
            reader_id=self.reader_id,
        )

    def close(self) -> None:
        """Stop accepting and release the listening socket."""
        self.running = False
        if self.server_socket:
            self.server_socket.close()
            self.server_socket = None

    async def serve_forever(self) -> None:
        if self.server_socket is None:
            self.start()

        loop = asyncio.get_running_loop()
        self.running = True
        try:
            while self.running:
                try:
                    client_sock, addr = await loop.sock_accept(self.server_socket)
                except OSError as e:
                    if self.running:
                        logger.error("accept_failed", error=str(e), retry_in_sec=self.accept_retry_delay)
                        await asyncio.sleep(self.accept_retry_delay)
                    continue
                await self.handle_client(client_sock, addr)
        finally:
            self.close()

    async def handle_client(self, client_sock: socket.socket, addr: Tuple[str, int]) -> None:
        """Serve one connection to completion."""
        reader, writer = await asyncio.open_connection(sock=client_sock)
        logger.info("client_connected", host=addr[0], port=addr[1])
        framer = StreamFramer(reader, writer)

        try:
            while True:
                frame = await framer.next_frame()
                if frame is None:
                    break
                response = self.dispatcher.process_frame(frame)
                if response is not None:
                    await framer.write_frame(response)
        except TransportError as e:
            logger.error("connection_error", host=addr[0], error=e.message)
        except Exception as e:
            logger.exception("connection_handler_failed", host=addr[0], error=str(e))
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except Exception as e:
                logger.warning(
                    "client_writer_close_failed",
                    host=addr[0],
                    error=str(e),
                    error_type=type(e).__name__,
                )
            logger.info("client_disconnected", host=addr[0], port=addr[1])
