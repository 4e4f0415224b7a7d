"""
TCP Sink Module for netsink.

This module provides the TCP listener that copies every byte received on
each accepted connection to a shared output stream (stdout by default).
"""

import asyncio
import logging
import sys
from concurrent.futures import ThreadPoolExecutor
from typing import BinaryIO, Optional, Set, Tuple

import aiofiles.threadpool

from .constants import READ_CHUNK_SIZE
from .shutdown import ShutdownToken

logger = logging.getLogger(__name__)


def format_peer(peername) -> str:
    """Format a socket peername as host:port ([host]:port for IPv6)"""
    if not peername:
        return "unknown"
    if isinstance(peername, (tuple, list)) and len(peername) >= 2:
        host, port = peername[0], peername[1]
        if ":" in str(host):
            return f"[{host}]:{port}"
        return f"{host}:{port}"
    return str(peername)


class TCPConnection:
    """
    Represents one accepted TCP connection.

    The connection is owned by the handler task that accepted it and is
    closed exactly once, whatever way the handler exits.
    """

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        """
        Initialize a new TCP connection with the given reader and writer.

        Args:
            reader: The asyncio stream reader for this connection
            writer: The asyncio stream writer for this connection
        """
        self.reader = reader
        self.writer = writer
        self.peer = format_peer(writer.get_extra_info('peername'))
        self.bytes_received = 0
        self.closed = False

    async def copy_to(self, sink) -> int:
        """
        Copy everything received on this connection to the sink until EOF.

        Each chunk is written and flushed before the next read, so per-connection
        order is preserved.

        Args:
            sink: aiofiles-wrapped binary stream receiving the data

        Returns:
            Number of bytes copied
        """
        while True:
            data = await self.reader.read(READ_CHUNK_SIZE)
            if not data:
                break
            await sink.write(data)
            await sink.flush()
            self.bytes_received += len(data)
        return self.bytes_received

    async def close(self, log: logging.Logger = logger) -> None:
        """Close the connection; safe to call more than once."""
        if self.closed:
            return
        self.closed = True
        try:
            self.writer.close()
            await self.writer.wait_closed()
        except OSError as e:
            log.debug(f"Error closing connection to {self.peer}: {e}")


class TCPSinkServer:
    """
    TCP listener that streams each connection's bytes into a sink.

    There is no framing, no idle timeout and no connection cap; concurrent
    connections interleave in the sink chunk by chunk. Sink writes run on a
    single worker thread, so a stalled sink never blocks the event loop.
    """

    def __init__(
        self,
        host: str,
        port: int,
        sink: Optional[BinaryIO] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the TCP sink server.

        Args:
            host: The host IP to bind to
            port: The port to listen on (0 picks a free port)
            sink: Binary stream for received data (defaults to stdout)
            logger: Logger to report on (defaults to this module's logger)
        """
        self.host = host
        self.port = port
        self.sink = sink if sink is not None else sys.stdout.buffer
        self.logger = logger or logging.getLogger(__name__)
        self.connections: Set[TCPConnection] = set()
        self.handlers: Set[asyncio.Task] = set()
        self.server: Optional[asyncio.AbstractServer] = None
        self.executor: Optional[ThreadPoolExecutor] = None
        self.output = None

    @property
    def running(self) -> bool:
        return self.server is not None and self.server.is_serving()

    @property
    def address(self) -> Tuple[str, int]:
        """The bound (host, port) once started."""
        if not self.server or not self.server.sockets:
            return self.host, self.port
        sockname = self.server.sockets[0].getsockname()
        return sockname[0], sockname[1]

    async def start(self) -> None:
        """
        Bind the listening socket.

        Raises:
            OSError: if the address cannot be bound
        """
        # One worker keeps chunks from all connections in submission order
        self.executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="netsink-sink")
        self.output = aiofiles.threadpool.wrap(self.sink, executor=self.executor)
        try:
            self.server = await asyncio.start_server(
                self.handle_connection,
                self.host,
                self.port,
                reuse_address=True,
            )
        except OSError:
            self.executor.shutdown(wait=False)
            self.executor = None
            raise
        host, port = self.address
        self.logger.info(f"Listening for TCP connections on {host}:{port}")

    async def serve(self, token: Optional[ShutdownToken] = None) -> None:
        """
        Accept connections until the token is triggered, or forever without one.

        Args:
            token: Optional shutdown token that stops the listener
        """
        if self.server is None:
            await self.start()

        if token is None:
            await self.server.serve_forever()
            return

        await token.wait()
        self.logger.info(f"Stopping TCP listener ({token.reason})")
        await self.stop()

    async def stop(self) -> None:
        """Close the listener and every open connection."""
        if self.server is None:
            return

        server, self.server = self.server, None
        server.close()

        if self.connections:
            self.logger.info(f"Closing {len(self.connections)} active TCP connections")
            await asyncio.gather(
                *(conn.close(self.logger) for conn in list(self.connections)),
                return_exceptions=True,
            )
            await asyncio.gather(*list(self.handlers), return_exceptions=True)

        await server.wait_closed()
        if self.executor is not None:
            self.executor.shutdown(wait=False)
            self.executor = None
        self.logger.info("TCP listener stopped")

    async def handle_connection(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        """
        Handle a new client connection.

        Args:
            reader: The asyncio stream reader for this connection
            writer: The asyncio stream writer for this connection
        """
        conn = TCPConnection(reader, writer)
        handler = asyncio.current_task()
        self.connections.add(conn)
        self.handlers.add(handler)
        self.logger.info(f"TCP connection established from {conn.peer}")

        try:
            await conn.copy_to(self.output)
        except OSError as e:
            self.logger.error(f"Error while reading from TCP connection: {e}")
        finally:
            self.connections.discard(conn)
            self.handlers.discard(handler)
            await conn.close(self.logger)
            self.logger.debug(f"Copied {conn.bytes_received} bytes from {conn.peer}")
            self.logger.info(f"TCP connection closed from {conn.peer}")
