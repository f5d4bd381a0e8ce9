"""
Connection registry.

The set of live connections available as broadcast recipients.
"""

import logging
import threading

from .exceptions import AlreadyRegisteredError

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """
    Concurrency-safe set of live connections.

    Membership is an immutable frozenset replaced on every mutation
    (copy-on-write). snapshot() hands out the current frozenset, so
    iterating it never observes a later add or remove, and a slow
    broadcast never holds up sessions joining or leaving.

    Members are keyed by identity; no method performs I/O.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._members = frozenset()

    def add(self, connection):
        """
        Register a connection.

        Raises:
            AlreadyRegisteredError: connection is already a member
        """
        with self._lock:
            if connection in self._members:
                raise AlreadyRegisteredError(f"{connection!r} is already registered")
            self._members = self._members | {connection}
            size = len(self._members)
        logger.debug(f"Registered {connection!r} ({size} live)")

    def remove(self, connection):
        """
        Unregister a connection.

        Returns:
            True if it was a member, False if it was already gone
        """
        with self._lock:
            if connection not in self._members:
                return False
            self._members = self._members - {connection}
            size = len(self._members)
        logger.debug(f"Unregistered {connection!r} ({size} live)")
        return True

    def snapshot(self):
        """Return the point-in-time membership as a frozenset."""
        return self._members

    def __len__(self):
        return len(self._members)

    def __contains__(self, connection):
        return connection in self._members

    def __iter__(self):
        return iter(self.snapshot())
