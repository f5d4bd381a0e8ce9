"""
Client session.

Owns one Connection for its whole life: registers it, runs the read loop,
interprets commands and tears everything down on every exit path.
"""

import asyncio
import enum
import logging
from collections import namedtuple

from .exceptions import ConnectionIOError, MalformedCommandError
from .protocol import BROADCAST, QUIT, parse_command

logger = logging.getLogger(__name__)

BroadcastResult = namedtuple("BroadcastResult", ["attempted", "failed"])


class SessionState(enum.Enum):
    ACCEPTED = "accepted"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


class ClientSession:
    """
    Lifecycle of one accepted connection.

    States: ACCEPTED -> ACTIVE -> CLOSING -> CLOSED.
    The connection is a registry member exactly while the session is ACTIVE
    or CLOSING; teardown removes it before closing the transport.
    """

    def __init__(self, connection, registry, include_sender=True):
        """
        Initialize session.

        Args:
            connection: Connection owned by this session
            registry: shared ConnectionRegistry
            include_sender: whether broadcasts are also written back to this connection
        """
        self.connection = connection
        self.registry = registry
        self.include_sender = include_sender
        self.state = SessionState.ACCEPTED
        self.background_tasks = set()

    def format_addr(self):
        return self.connection.format_addr()

    def register(self):
        """Add the connection to the registry and become ACTIVE."""
        self.registry.add(self.connection)
        self.state = SessionState.ACTIVE

    async def run(self):
        """
        Main read loop.

        Reads lines until EOF, /quit or an I/O error, then tears down.
        """
        if self.state is SessionState.ACCEPTED:
            self.register()
        addr = self.format_addr()
        try:
            while self.state is SessionState.ACTIVE:
                try:
                    line = await self.connection.read_line()
                except ConnectionIOError as e:
                    logger.error(f"ERROR: {addr} has connection error: {e}")
                    break
                if line is None:
                    logger.info(f"{addr} disconnected (EOF)")
                    break
                await self.handle_line(line)
        finally:
            await self.close()

    async def handle_line(self, line):
        """Interpret one line received from the client."""
        addr = self.format_addr()
        logger.debug(f"Received from {addr}: {line}")
        try:
            command = parse_command(line)
        except MalformedCommandError as e:
            logger.warning(f"Ignoring malformed command from {addr}: {e}")
            return
        if command.kind == QUIT:
            logger.info(f"{addr} quit")
            self.state = SessionState.CLOSING
        elif command.kind == BROADCAST:
            # fan-out never blocks the read loop
            task = asyncio.create_task(self.fan_out(self.recipients(), command.payload))
            self.background_tasks.add(task)
            task.add_done_callback(self._task_done_callback)
        else:
            logger.debug(f"No action for line from {addr}")

    async def broadcast(self, payload):
        """
        Write payload to every connection in the current registry snapshot.

        A failed write is logged and its recipient closed; the remaining
        recipients are still written and the sender's session carries on.

        Returns:
            BroadcastResult(attempted, failed)
        """
        return await self.fan_out(self.recipients(), payload)

    def recipients(self):
        """Current registry snapshot, less this connection unless include_sender."""
        return [
            conn for conn in self.registry.snapshot()
            if self.include_sender or conn is not self.connection
        ]

    async def fan_out(self, recipients, payload):
        """Write payload to each recipient concurrently; returns BroadcastResult."""
        logger.debug(f"Broadcasting from {self.format_addr()} to {len(recipients)} connections")
        results = await asyncio.gather(*(self._deliver(conn, payload) for conn in recipients))
        failed = results.count(False)
        if failed:
            logger.info(f"Broadcast from {self.format_addr()}: {failed}/{len(recipients)} writes failed")
        return BroadcastResult(len(recipients), failed)

    async def _deliver(self, recipient, payload):
        try:
            await recipient.write_line(payload)
            return True
        except ConnectionIOError as e:
            logger.warning(f"Write to {recipient.format_addr()} failed: {e}")
        # closing unblocks the recipient's own read loop, which unregisters it
        if recipient is not self.connection:
            await recipient.close()
        return False

    def _task_done_callback(self, task):
        """Called when a background fan-out completes"""
        self.background_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Broadcast from {self.format_addr()} failed: {error!r}")

    async def close(self):
        """
        Tear down: unregister, close the connection, then let pending
        fan-outs finish. Idempotent.
        """
        if self.state is SessionState.CLOSED:
            return
        self.state = SessionState.CLOSING
        try:
            self.registry.remove(self.connection)
            await self.connection.close()
            pending = list(self.background_tasks)
            if pending:
                # each write is bounded by the connection's write timeout
                await asyncio.gather(*pending, return_exceptions=True)
        finally:
            self.state = SessionState.CLOSED
            logger.debug(f"Session {self.format_addr()} closed")
