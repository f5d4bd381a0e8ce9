"""
Client connection wrapper.

A duplex text channel to one remote peer: line reads, atomic line writes
and idempotent close.
"""

import asyncio
import logging

from .exceptions import ConnectionClosedError, ConnectionIOError
from .protocol import decode_line, encode_line

logger = logging.getLogger(__name__)

DEFAULT_WRITE_TIMEOUT = 2.0


class Connection:
    """
    Represents the stream pair of a single connected client.

    Manages:
    - Line reads (single owner: the client's session)
    - Serialized line writes (any number of broadcasters)
    - Transport shutdown
    """

    def __init__(self, reader, writer, write_timeout=DEFAULT_WRITE_TIMEOUT):
        """
        Initialize connection.

        Args:
            reader: asyncio StreamReader for this client
            writer: asyncio StreamWriter for this client
            write_timeout: seconds a single write may wait on drain, None for no limit
        """
        self.reader = reader
        self.writer = writer
        self.addr = writer.get_extra_info("peername")
        self.write_timeout = write_timeout
        self.write_lock = asyncio.Lock()
        self._closed = False

    def __repr__(self):
        return f"<Connection {self.format_addr()}{' closed' if self._closed else ''}>"

    @property
    def closed(self):
        return self._closed

    def format_addr(self):
        """Format address as IP:Port string."""
        if not self.addr:
            return "unknown"
        return f"{self.addr[0]}:{self.addr[1]}"

    async def read_line(self):
        """
        Read one line from the peer.

        Returns:
            The decoded line, or None on EOF
        Raises:
            ConnectionIOError: transport failure or a line over the reader limit
        """
        try:
            raw = await self.reader.readline()
        except (asyncio.LimitOverrunError, ValueError) as e:
            raise ConnectionIOError(f"{self.format_addr()} sent an over-long line") from e
        except OSError as e:
            raise ConnectionIOError(f"read from {self.format_addr()} failed: {e}") from e
        if not raw:
            return None
        return decode_line(raw)

    async def write_line(self, text):
        """
        Write one line to the peer.

        The write lock is held across write and drain so concurrent callers
        never interleave partial lines.

        Raises:
            ConnectionClosedError: connection already closed
            ConnectionIOError: transport failure or write timeout
        """
        data = encode_line(text)
        async with self.write_lock:
            if self._closed or self.writer.is_closing():
                raise ConnectionClosedError(f"{self.format_addr()} is closed")
            try:
                self.writer.write(data)
                if self.write_timeout is None:
                    await self.writer.drain()
                else:
                    await asyncio.wait_for(self.writer.drain(), timeout=self.write_timeout)
            except asyncio.TimeoutError as e:
                raise ConnectionIOError(f"write to {self.format_addr()} timed out") from e
            except OSError as e:
                raise ConnectionIOError(f"write to {self.format_addr()} failed: {e}") from e

    async def close(self):
        """Close the transport. Safe to call any number of times."""
        if self._closed:
            return
        self._closed = True
        logger.debug(f"Closing connection {self.format_addr()}")
        transport = self.writer.transport
        if transport.get_write_buffer_size():
            # unflushed output would keep a graceful close waiting on the peer
            transport.abort()
        else:
            self.writer.close()
        try:
            await self.writer.wait_closed()
        except OSError as e:
            logger.debug(f"Error@{self.format_addr()} while closing: {e}")
