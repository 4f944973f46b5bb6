"""
Bidirectional byte relay between a client and an established tunnel.

Each direction copies until its source reaches EOF, then half-closes the
write side of its destination so the peer sees EOF too. The other direction
keeps draining until it finishes on its own. An I/O error in one direction
cancels the other, since its peer is gone. Both sockets are closed on every
exit path, cancellation included.
"""

import asyncio
from dataclasses import dataclass

from proxyforward.config import RELAY_BUFFER_SIZE
from proxyforward.errors import RelayIOError
from proxyforward.tunnel.connector import close_writer
from proxyforward.utils.logger import get_logger

logger = get_logger(__name__)

CLIENT_TO_TUNNEL = "client->tunnel"
TUNNEL_TO_CLIENT = "tunnel->client"


@dataclass
class RelayResult:
    """Byte counts per direction, plus the first error seen (if any)."""

    bytes_up: int = 0
    bytes_down: int = 0
    error: RelayIOError | None = None


async def bind_reader_writer(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    buffer_size: int = RELAY_BUFFER_SIZE,
) -> int:
    """
    Pipe data from reader to writer until EOF.

    Args:
        reader: Source stream.
        writer: Destination stream.
        buffer_size: Maximum bytes read per iteration.

    Returns:
        Number of bytes copied.

    Raises:
        OSError: On read or write failure.
    """
    total = 0
    while True:
        data = await reader.read(buffer_size)
        if not data:
            break
        writer.write(data)
        await writer.drain()
        total += len(data)
    return total


def half_close(writer: asyncio.StreamWriter) -> None:
    """Signal end-of-output on a writer, ignoring already-dead sockets."""
    if writer.is_closing():
        return
    try:
        if writer.can_write_eof():
            writer.write_eof()
    except OSError:
        pass


class Relay:
    """Couples a client connection and a tunnel connection."""

    def __init__(
        self,
        client_reader: asyncio.StreamReader,
        client_writer: asyncio.StreamWriter,
        tunnel_reader: asyncio.StreamReader,
        tunnel_writer: asyncio.StreamWriter,
        log_prefix: str = "",
        buffer_size: int = RELAY_BUFFER_SIZE,
    ):
        self.client_reader = client_reader
        self.client_writer = client_writer
        self.tunnel_reader = tunnel_reader
        self.tunnel_writer = tunnel_writer
        self.log_prefix = log_prefix or "[Relay]"
        self.buffer_size = buffer_size

    async def _direction(
        self,
        name: str,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> int:
        try:
            copied = await bind_reader_writer(reader, writer, self.buffer_size)
        except OSError as e:
            raise RelayIOError(name, e) from e
        logger.debug(f"{self.log_prefix} {name} reached EOF after {copied} bytes.")
        half_close(writer)
        return copied

    async def run(self) -> RelayResult:
        """
        Relay until both directions are done, then close both sockets.

        Returns:
            RelayResult with per-direction byte counts.
        """
        result = RelayResult()
        up = asyncio.create_task(
            self._direction(CLIENT_TO_TUNNEL, self.client_reader, self.tunnel_writer)
        )
        down = asyncio.create_task(
            self._direction(TUNNEL_TO_CLIENT, self.tunnel_reader, self.client_writer)
        )
        pending = {up, down}

        try:
            while pending:
                done, pending = await asyncio.wait(
                    pending, return_when=asyncio.FIRST_COMPLETED
                )
                for task in done:
                    if task.cancelled() or task.exception() is None:
                        continue
                    error = task.exception()
                    if not isinstance(error, RelayIOError):
                        raise error
                    if result.error is None:
                        result.error = error
                        logger.info(f"{self.log_prefix} {error}")
                    for other in pending:
                        other.cancel()
        finally:
            for task in (up, down):
                if not task.done():
                    task.cancel()
            await asyncio.gather(up, down, return_exceptions=True)
            await close_writer(self.client_writer)
            await close_writer(self.tunnel_writer)

        if not up.cancelled() and up.exception() is None:
            result.bytes_up = up.result()
        if not down.cancelled() and down.exception() is None:
            result.bytes_down = down.result()
        return result
