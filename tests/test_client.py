"""
Basic unit tests for the relay console client.
"""
import asyncio
import socket

import pytest
from unittest.mock import Mock, AsyncMock

from relay_client.client import Client


@pytest.mark.fast
def test_client_message_validation():
    """Test message validation"""
    client = Client('localhost', 8080)

    # Valid messages
    assert client.message_validation("/quit") == True
    assert client.message_validation("/broadcast hello") == True
    assert client.message_validation("/broadcast  spaced out ") == True

    # Invalid messages
    assert client.message_validation("") == False
    assert client.message_validation("   ") == False
    assert client.message_validation("/broadcast ") == False
    assert client.message_validation("/broadcast") == False
    assert client.message_validation("/leave") == False
    assert client.message_validation("random text") == False
    assert client.message_validation("/broadcast " + "x" * 1000) == False


@pytest.mark.fast
@pytest.mark.asyncio
async def test_send_message_appends_newline():
    client = Client('localhost', 8080)
    client.writer = Mock()
    client.writer.drain = AsyncMock()

    assert await client.send_message("/broadcast hi") == True
    client.writer.write.assert_called_once_with(b"/broadcast hi\n")


@pytest.mark.fast
@pytest.mark.asyncio
async def test_send_message_reports_broken_connection():
    client = Client('localhost', 8080)
    client.writer = Mock()
    client.writer.drain = AsyncMock(side_effect=BrokenPipeError("gone"))

    assert await client.send_message("/broadcast hi") == False


@pytest.mark.fast
@pytest.mark.asyncio
async def test_connect_refused_returns_nothing():
    # bind then release a port so nothing is listening on it
    free_socket = socket.socket()
    free_socket.bind(('127.0.0.1', 0))
    port = free_socket.getsockname()[1]
    free_socket.close()

    client = Client('127.0.0.1', port)
    assert await client.connect_to_server() == (None, None)


@pytest.mark.fast
@pytest.mark.asyncio
async def test_receive_message_prints_each_line(capsys):
    client = Client('localhost', 8080)
    client.reader = asyncio.StreamReader()
    client.reader.feed_data(b"hello\r\n  spaced  \n")
    client.reader.feed_eof()

    await client.receive_message()

    out = capsys.readouterr().out
    assert "\rhello\n" in out
    assert "\r  spaced  \n" in out
