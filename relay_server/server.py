"""
Main relay server implementation.

Handles the listening socket, per-connection sessions and server lifecycle.
"""

import argparse
import asyncio
import logging
import sys

from .connection import DEFAULT_WRITE_TIMEOUT, Connection
from .exceptions import AcceptError, AlreadyRegisteredError, BindError, ListenerError
from .registry import ConnectionRegistry
from .session import ClientSession

logger = logging.getLogger(__name__)

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 8080
DEFAULT_LINE_LIMIT = 2 ** 16
LISTENER_POLL_INTERVAL = 0.5


class Server:
    """
    Text-line chat relay server.

    Features:
    - One session task per accepted connection
    - Copy-on-write connection registry shared by all sessions
    - Broadcast fan-out isolated from individual recipient failures
    """

    def __init__(self, host=DEFAULT_HOST, port=DEFAULT_PORT, include_sender=True,
                 write_timeout=DEFAULT_WRITE_TIMEOUT, line_limit=DEFAULT_LINE_LIMIT):
        """
        Initialize server.

        Args:
            host: Interface to bind
            port: Port to listen on, 0 picks a free port
            include_sender: Deliver broadcasts back to their sender as well
            write_timeout: Seconds a single recipient write may take, None for no limit
            line_limit: Longest line accepted from a client, in bytes
        """
        self.host = host
        self.port = port
        self.include_sender = include_sender
        self.write_timeout = write_timeout
        self.line_limit = line_limit
        self.registry = ConnectionRegistry()
        self.sessions = set()
        self._handlers = set()
        self.address = None
        self._server = None
        self._stopped = asyncio.Event()

    async def start(self):
        """
        Bind the listening socket.

        Returns:
            The bound (host, port)
        Raises:
            BindError: the address is unavailable
        """
        try:
            self._server = await asyncio.start_server(
                self.client_handler,
                self.host,
                self.port,
                limit=self.line_limit,
            )
        except OSError as e:
            raise BindError(f"Cannot listen on {self.host}:{self.port}: {e}") from e
        self.address = self._server.sockets[0].getsockname()[:2]
        logger.info(f"Server running on {self.address[0]}:{self.address[1]}")
        return self.address

    async def run(self):
        """
        Serve until stop() is called.

        The listener accepts in the background once started; cancelling run()
        stops the server before the cancellation propagates.

        Raises:
            ListenerError: the listener stopped serving without stop()
        """
        if self._server is None:
            await self.start()
        try:
            while not self._stopped.is_set():
                if not self._server.is_serving():
                    await self.stop()
                    raise ListenerError(f"Listener on {self.address[0]}:{self.address[1]} stopped serving")
                try:
                    await asyncio.wait_for(self._stopped.wait(), timeout=LISTENER_POLL_INTERVAL)
                except asyncio.TimeoutError:
                    continue
        except asyncio.CancelledError:
            await self.stop()
            raise

    async def stop(self):
        """Close the listener, then every live connection, and wait for their sessions."""
        if self._stopped.is_set():
            return
        self._stopped.set()
        if self._server is not None:
            self._server.close()
        # closing a connection is the only way to end its session's blocked read
        for connection in self.registry.snapshot():
            await connection.close()
        sessions = list(self.sessions)
        if sessions:
            await asyncio.gather(*(session.close() for session in sessions))
        handlers = self._handlers - {asyncio.current_task()}
        if handlers:
            await asyncio.gather(*handlers, return_exceptions=True)
        logger.info("Server stopped")

    async def client_handler(self, reader, writer):
        """Handle a single accepted connection for its whole life."""
        if self._stopped.is_set():
            writer.close()
            return
        try:
            session = self.accept(reader, writer)
        except AcceptError as e:
            logger.error(f"ERROR: {e}")
            writer.close()
            return
        logger.info(f"Client Connected: {session.format_addr()}")
        handler = asyncio.current_task()
        self.sessions.add(session)
        self._handlers.add(handler)
        try:
            await session.run()
        finally:
            self.sessions.discard(session)
            self._handlers.discard(handler)

    def accept(self, reader, writer):
        """Wrap an accepted stream pair and register it as a new session."""
        try:
            connection = Connection(reader, writer, write_timeout=self.write_timeout)
            session = ClientSession(connection, self.registry, include_sender=self.include_sender)
            session.register()
        except (AlreadyRegisteredError, OSError) as e:
            raise AcceptError(f"Could not set up connection: {e}") from e
        return session


def main():
    """Entry point for server"""
    parser = argparse.ArgumentParser(description="Line Relay Server")
    parser.add_argument('--host', default=DEFAULT_HOST, help='Interface to bind')
    parser.add_argument('--port', type=int, default=DEFAULT_PORT, help='Port to listen on')
    parser.add_argument('--exclude-sender', action='store_true',
                        help='Do not deliver broadcasts back to their sender')
    parser.add_argument('--write-timeout', type=float, default=DEFAULT_WRITE_TIMEOUT,
                        help='Seconds a single recipient write may take, 0 for no limit')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')
    args = parser.parse_args()

    # setup logging
    level = logging.DEBUG if args.debug else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    server = Server(
        args.host,
        args.port,
        include_sender=not args.exclude_sender,
        write_timeout=args.write_timeout or None,
    )
    try:
        asyncio.run(server.run())
    except (BindError, ListenerError) as e:
        logger.error(f"ERROR: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Server stopped by user")


if __name__ == "__main__":
    main()
