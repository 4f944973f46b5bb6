"""
CONNECT handshake against the HTTP proxy.

Dials the proxy, sends the CONNECT request and reads the response head. On a
2xx answer the proxy streams become a raw pipe to the target. Bytes the proxy
sent after the header terminator stay buffered in the StreamReader, so the
relay picks them up as the first tunnel payload.
"""

import asyncio
from dataclasses import dataclass

from proxyforward.config import MAX_HEADER_BYTES
from proxyforward.errors import ProxyRejected, ProxyUnreachable
from proxyforward.models.enums import ConnectorState
from proxyforward.models.tunnel import TunnelSpec
from proxyforward.tunnel.protocol import (
    ConnectResponse,
    build_connect_request,
    parse_response_head,
)
from proxyforward.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class EstablishedTunnel:
    """Proxy streams after a successful CONNECT."""

    reader: asyncio.StreamReader
    writer: asyncio.StreamWriter
    response: ConnectResponse


async def close_writer(writer: asyncio.StreamWriter, timeout: float = 1.0) -> None:
    """Close a stream writer and wait briefly for the socket to go away."""
    writer.close()
    try:
        await asyncio.wait_for(writer.wait_closed(), timeout=timeout)
    except (OSError, asyncio.TimeoutError):
        pass


class Connector:
    """Performs the CONNECT handshake for one outbound leg."""

    def __init__(self, spec: TunnelSpec, log_prefix: str = ""):
        self.spec = spec
        self.state = ConnectorState.DIALING
        self.log_prefix = log_prefix or f"[:{spec.listen_port}]"

    async def _open(self) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        spec = self.spec
        try:
            return await asyncio.wait_for(
                asyncio.open_connection(
                    spec.proxy_host, spec.proxy_port, limit=MAX_HEADER_BYTES
                ),
                timeout=spec.connect_timeout,
            )
        except asyncio.TimeoutError:
            raise ProxyUnreachable(
                spec.proxy_host, spec.proxy_port, "timeout while connecting"
            )
        except OSError as e:
            raise ProxyUnreachable(spec.proxy_host, spec.proxy_port, str(e)) from e

    async def _read_lines(self, reader: asyncio.StreamReader) -> bytes:
        """Read header lines up to the blank line; CRLF and bare LF both end a line."""
        lines = []
        size = 0
        while True:
            line = await reader.readline()
            if not line.endswith(b"\n"):
                raise ProxyRejected(
                    None, f"proxy closed connection after {size + len(line)} bytes"
                )
            size += len(line)
            if size > MAX_HEADER_BYTES:
                raise ProxyRejected(None, "proxy response headers too long")
            if line in (b"\r\n", b"\n"):
                return b"".join(lines)
            lines.append(line)

    async def _read_head(self, reader: asyncio.StreamReader) -> bytes:
        spec = self.spec
        try:
            return await asyncio.wait_for(
                self._read_lines(reader), timeout=spec.handshake_timeout
            )
        except asyncio.TimeoutError:
            raise ProxyRejected(None, "timeout waiting for proxy response")
        except ValueError:
            # readline() reports a line longer than the stream limit this way
            raise ProxyRejected(None, "proxy response headers too long")
        except OSError as e:
            raise ProxyUnreachable(spec.proxy_host, spec.proxy_port, str(e)) from e

    async def dial(self) -> EstablishedTunnel:
        """
        Open the tunnel to the spec's target through the proxy.

        Returns:
            EstablishedTunnel with the proxy streams and parsed response.

        Raises:
            ProxyUnreachable: TCP connect failed or handshake I/O failed.
            ProxyRejected: Non-2xx status, timeout, or malformed response.
        """
        spec = self.spec
        self.state = ConnectorState.DIALING
        logger.debug(f"{self.log_prefix} Dialing proxy {spec.proxy}...")

        try:
            reader, writer = await self._open()
        except BaseException:
            self.state = ConnectorState.FAILED
            raise

        try:
            request = build_connect_request(spec)
            try:
                writer.write(request)
                await writer.drain()
            except OSError as e:
                raise ProxyUnreachable(spec.proxy_host, spec.proxy_port, str(e)) from e
            self.state = ConnectorState.SENT_CONNECT
            logger.debug(f"{self.log_prefix} Sent CONNECT {spec.target}")

            self.state = ConnectorState.AWAITING_STATUS_LINE
            head = await self._read_head(reader)

            response = parse_response_head(head)
            if response is None:
                first_line = head.splitlines()[0] if head else b""
                raise ProxyRejected(
                    None,
                    f"malformed status line: {first_line.decode('latin-1')!r}",
                )
            if not response.ok:
                raise ProxyRejected(response.status_code, response.reason)

        except BaseException:
            self.state = ConnectorState.FAILED
            await close_writer(writer)
            raise

        self.state = ConnectorState.ESTABLISHED
        logger.debug(
            f"{self.log_prefix} Proxy answered {response.status_code} "
            f"{response.reason}; tunnel to {spec.target} established."
        )
        return EstablishedTunnel(reader=reader, writer=writer, response=response)

