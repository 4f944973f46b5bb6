"""
Shared fixtures: a mock CONNECT proxy and mock target servers.

Everything binds to 127.0.0.1 on an ephemeral port. Tests are plain
functions that drive their coroutines through ``run``.
"""

import asyncio
import socket

import pytest

from proxyforward.models.enums import LogLevel
from proxyforward.models.tunnel import LOOPBACK_HOST, TunnelSpec
from proxyforward.utils.logger import configure_logging

TEST_TIMEOUT = 10.0


def run(coro, timeout: float = TEST_TIMEOUT):
    """Run a coroutine to completion with an overall timeout."""

    async def _bounded():
        return await asyncio.wait_for(coro, timeout=timeout)

    return asyncio.run(_bounded())


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind((LOOPBACK_HOST, 0))
        return s.getsockname()[1]


def make_spec(proxy_port: int, target_port: int, listen_port: int = 0, **kwargs) -> TunnelSpec:
    fields = dict(
        listen_port=listen_port,
        listen_host=LOOPBACK_HOST,
        target_host=LOOPBACK_HOST,
        target_port=target_port,
        proxy_host=LOOPBACK_HOST,
        proxy_port=proxy_port,
        user_agent="tool/1.0",
        handshake_timeout=2.0,
        connect_timeout=2.0,
    )
    fields.update(kwargs)
    return TunnelSpec(**fields)


async def read_all(reader: asyncio.StreamReader) -> bytes:
    chunks = []
    while True:
        data = await reader.read(65536)
        if not data:
            break
        chunks.append(data)
    return b"".join(chunks)


# =============================================================================
# Mock Target
# =============================================================================


class MockTarget:
    """
    Target server that records what it receives.

    In echo mode every chunk is written back; otherwise it sends ``greeting``
    on connect and records input until EOF.
    """

    def __init__(self, echo: bool = True, greeting: bytes = b""):
        self.echo = echo
        self.greeting = greeting
        self.received: list[bytes] = []
        self.connections = 0
        self.eof_seen = asyncio.Event()
        self.server: asyncio.AbstractServer | None = None

    @property
    def port(self) -> int:
        return self._port

    @property
    def data(self) -> bytes:
        return b"".join(self.received)

    async def _handle(self, reader, writer):
        self.connections += 1
        try:
            if self.greeting:
                writer.write(self.greeting)
                await writer.drain()
            while True:
                data = await reader.read(65536)
                if not data:
                    break
                self.received.append(data)
                if self.echo:
                    writer.write(data)
                    await writer.drain()
            self.eof_seen.set()
        except OSError:
            pass
        finally:
            writer.close()

    async def start(self) -> "MockTarget":
        self.server = await asyncio.start_server(self._handle, LOOPBACK_HOST, 0)
        self._port = self.server.sockets[0].getsockname()[1]
        return self

    async def close(self):
        self.server.close()


# =============================================================================
# Mock Proxy
# =============================================================================


class MockProxy:
    """
    Minimal HTTP CONNECT proxy.

    Args:
        status_line: Response status line sent back.
        early_bytes: Extra bytes sent in the same write as the response head.
        respond: If False, never answer (handshake timeout tests).
    """

    def __init__(
        self,
        status_line: bytes = b"HTTP/1.1 200 Connection established",
        early_bytes: bytes = b"",
        respond: bool = True,
        extra_headers: bytes = b"",
    ):
        self.status_line = status_line
        self.early_bytes = early_bytes
        self.respond = respond
        self.extra_headers = extra_headers
        self.requests: list[bytes] = []
        self.server: asyncio.AbstractServer | None = None

    @property
    def port(self) -> int:
        return self._port

    async def _pipe(self, reader, writer):
        try:
            while True:
                data = await reader.read(65536)
                if not data:
                    break
                writer.write(data)
                await writer.drain()
            if writer.can_write_eof():
                writer.write_eof()
        except OSError:
            pass

    async def _handle(self, reader, writer):
        target_writer = None
        try:
            head = await reader.readuntil(b"\r\n\r\n")
            self.requests.append(head)
            if not self.respond:
                await reader.read()
                return

            parts = self.status_line.split(b" ")
            ok = len(parts) > 1 and parts[1].startswith(b"2")
            if ok:
                request_line = head.split(b"\r\n", 1)[0].decode()
                host, _, port = request_line.split(" ")[1].rpartition(":")
                target_reader, target_writer = await asyncio.open_connection(
                    host, int(port)
                )

            writer.write(
                self.status_line + b"\r\n" + self.extra_headers + b"\r\n" + self.early_bytes
            )
            await writer.drain()
            if not ok:
                return

            await asyncio.gather(
                self._pipe(reader, target_writer),
                self._pipe(target_reader, writer),
            )
        except (OSError, asyncio.IncompleteReadError):
            pass
        finally:
            writer.close()
            if target_writer is not None:
                target_writer.close()

    async def start(self) -> "MockProxy":
        self.server = await asyncio.start_server(self._handle, LOOPBACK_HOST, 0)
        self._port = self.server.sockets[0].getsockname()[1]
        return self

    async def close(self):
        self.server.close()


@pytest.fixture(autouse=True)
def _quiet_logging():
    configure_logging(LogLevel.WARNING)
