"""
Line protocol.

Newline-delimited UTF-8 text in both directions. Clients send:
- /quit              terminate the session
- /broadcast <text>  relay <text> to every registered connection
Anything else has no server-side effect.
"""

from collections import namedtuple

from .exceptions import MalformedCommandError

ENCODING = "utf-8"
QUIT_COMMAND = "/quit"
BROADCAST_COMMAND = "/broadcast"

QUIT = "quit"
BROADCAST = "broadcast"
MESSAGE = "message"

Command = namedtuple("Command", ["kind", "payload"])


def parse_command(line):
    """
    Interpret one received line.

    Args:
        line: decoded line without its terminator

    Returns:
        Command with kind QUIT, BROADCAST or MESSAGE

    Raises:
        MalformedCommandError: /broadcast without a payload
    """
    if line == QUIT_COMMAND:
        return Command(QUIT, None)
    if line == BROADCAST_COMMAND:
        raise MalformedCommandError(f"{BROADCAST_COMMAND} requires a payload")
    prefix = BROADCAST_COMMAND + " "
    if line.startswith(prefix):
        payload = line[len(prefix):]
        if not payload.strip():
            raise MalformedCommandError(f"{BROADCAST_COMMAND} payload is empty")
        return Command(BROADCAST, payload)
    return Command(MESSAGE, line)


def encode_line(text):
    """Encode text as a single wire line."""
    return text.encode(ENCODING) + b'\n'


def decode_line(raw):
    """Decode a wire line, dropping only its terminator."""
    return raw.decode(ENCODING, errors="replace").rstrip("\r\n")
