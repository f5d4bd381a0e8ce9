"""
Relay error taxonomy.

Every error raised by the relay derives from RelayError so callers can
catch the whole family at the scope that absorbs it.
"""


class RelayError(Exception):
    """Base class for relay errors."""


class BindError(RelayError):
    """The listening endpoint could not be established."""


class AcceptError(RelayError):
    """Setting up a single accepted connection failed."""


class ConnectionIOError(RelayError):
    """A read or write on one connection failed."""


class ConnectionClosedError(ConnectionIOError):
    """A write was attempted on a connection that is already closed."""


class AlreadyRegisteredError(RelayError):
    """The connection is already a member of the registry."""


class MalformedCommandError(RelayError):
    """A client command could not be interpreted."""


class ListenerError(RelayError):
    """The listening endpoint stopped serving while the server was running."""
