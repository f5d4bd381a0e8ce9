"""
Interactive relay client.
Handles the connection to the server, sending validated commands, printing relayed lines and graceful shutdown
"""

import asyncio
import sys
import logging
import argparse
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

QUIT_COMMAND = "/quit"
BROADCAST_PREFIX = "/broadcast "
MAX_MESSAGE_LENGTH = 1000


class Client():
    """
    Async client for the line relay

    Features:
    - Command validation before sending
    - Concurrent keyboard sender and server receiver
    - graceful shutdown on /quit or server disconnect
    """
    def __init__(self, host: str, port: int) -> None:
        """
        Initialize client
        Args:
            host: ip of the server to connect to
            port: port of the server to connect to
        """
        self.host = host
        self.port = port
        self.writer: Optional[asyncio.StreamWriter] = None
        self.reader: Optional[asyncio.StreamReader] = None

    async def connect_to_server(self) -> Tuple[Optional[asyncio.StreamReader], Optional[asyncio.StreamWriter]]:
        """Handle the connection to the relay server"""
        try:
            reader, writer = await asyncio.open_connection(self.host, self.port)
        except (OSError, asyncio.TimeoutError) as e:
            # refused, unreachable and timed-out connects all land here
            logger.error(f"ERROR: Cannot reach relay at {self.host}:{self.port}: {e!r}")
            return None, None
        logger.info(f"Connected to {self.host}:{self.port}")
        return reader, writer

    async def send_message(self, message: str) -> bool:
        """Send one line to the server"""
        try:
            self.writer.write(message.encode() + b'\n')
            await self.writer.drain()
            return True
        except OSError as e:
            logger.error(f"Connection lost while sending: {e!r}")
            return False

    def message_validation(self, msg: str) -> bool:
        """Check that msg is a command the server understands"""
        if not msg or not msg.strip():
            return False

        if len(msg) > MAX_MESSAGE_LENGTH:
            print(f"\nError: Message too long (max {MAX_MESSAGE_LENGTH} chars)")
            return False

        if msg.startswith(BROADCAST_PREFIX):
            if not msg[len(BROADCAST_PREFIX):].strip():
                print("\nError: Broadcast message is empty")
                return False
            return True
        elif msg == QUIT_COMMAND:
            return True
        else:
            print(f"\nError: Unknown command. Use {QUIT_COMMAND} or {BROADCAST_PREFIX}<message>")
            return False

    async def receive_message(self):
        """Print every line relayed by the server"""
        try:
            async for data in self.reader:
                message = data.decode(errors="replace").rstrip("\r\n")
                print(f"\r{message}")
                print("> ", end="", flush=True)
        except OSError as e:
            logger.error(f"Connection ERROR: {e!r}")
            return
        logger.info("Server disconnected")

    async def send_user_input(self):
        """Read user input and send to the server"""
        try:
            while True:
                print("> ", end="", flush=True)
                message = await asyncio.get_running_loop().run_in_executor(
                    None, sys.stdin.readline
                )
                # stdin closed
                if not message:
                    await self.send_message(QUIT_COMMAND)
                    break
                message = message.rstrip("\r\n")
                if not self.message_validation(message):
                    continue
                status = await self.send_message(message)
                if not status or message == QUIT_COMMAND:
                    logger.info("Client wants to close down...")
                    break
        except asyncio.CancelledError:
            logger.info("Stopping sender...")
            raise

    async def run(self):
        """Main client loop"""
        self.reader, self.writer = await self.connect_to_server()

        if self.reader is None and self.writer is None:
            logger.error("Failed to connect to the server")
            return

        print(f"Type {BROADCAST_PREFIX}<message> to talk, {QUIT_COMMAND} to exit.")
        receiver_task = asyncio.create_task(self.receive_message())
        sender_task = asyncio.create_task(self.send_user_input())

        try:
            # whichever side finishes first ends the session
            _, pending = await asyncio.wait(
                {receiver_task, sender_task},
                return_when=asyncio.FIRST_COMPLETED
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
        finally:
            if self.writer and not self.writer.is_closing():
                self.writer.close()
                try:
                    await self.writer.wait_closed()
                except OSError as e:
                    logger.debug(f"Error while closing: {e}")
            logger.info("Disconnected from server")


def main():
    """Entry point for client"""
    parser = argparse.ArgumentParser(description="Line Relay Client")
    parser.add_argument('--host', default='127.0.0.1', help='Server host')
    parser.add_argument('--port', type=int, default=8080, help='Server port')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')
    args = parser.parse_args()
    # setup logging
    level = logging.DEBUG if args.debug else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    client = Client(host=args.host, port=args.port)
    try:
        asyncio.run(client.run())
    except KeyboardInterrupt:
        logger.info("Client stopped by user")


if __name__ == "__main__":
    main()
