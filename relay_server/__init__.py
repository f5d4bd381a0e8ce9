"""
Line relay server package.

Main exports:
- Server: Main server class
- ConnectionRegistry: Shared set of live connections
- ClientSession: Per-connection read loop and teardown
- Connection: Line-oriented stream wrapper
"""

from .connection import Connection
from .registry import ConnectionRegistry
from .server import Server
from .session import BroadcastResult, ClientSession, SessionState

__version__ = "1.0.0"
__all__ = ['Server', 'ConnectionRegistry', 'ClientSession', 'SessionState', 'BroadcastResult', 'Connection']
