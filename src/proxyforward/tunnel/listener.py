"""
Local listener for one tunnel.

Binds the tunnel's listen address once and, for every accepted client, runs
the CONNECT handshake followed by the relay in an independent task. A
failure in one session only closes that session.
"""

import asyncio
import errno

from proxyforward.errors import BindError, ProxyRejected, ProxyUnreachable
from proxyforward.models.enums import SessionState
from proxyforward.models.tunnel import TunnelSpec
from proxyforward.tunnel.connector import Connector, close_writer
from proxyforward.tunnel.relay import Relay
from proxyforward.tunnel.session import Session, SessionCounter
from proxyforward.utils.logger import format_traceback, get_logger

logger = get_logger(__name__)


class Listener:
    """Accept loop for one TunnelSpec."""

    def __init__(self, spec: TunnelSpec, counter: SessionCounter | None = None):
        self.spec = spec
        self.counter = counter or SessionCounter()
        self._server: asyncio.AbstractServer | None = None
        self._sessions: set[asyncio.Task] = set()

    @property
    def log_prefix(self) -> str:
        return f"[:{self.spec.listen_port}]"

    @property
    def sockets(self) -> tuple:
        return tuple(self._server.sockets) if self._server else ()

    @property
    def bound_port(self) -> int | None:
        """Actual port after binding (differs from the spec when it asks for 0)."""
        for sock in self.sockets:
            return sock.getsockname()[1]
        return None

    @property
    def active_sessions(self) -> int:
        return len(self._sessions)

    async def start(self) -> None:
        """
        Bind the listen address and start accepting.

        Raises:
            BindError: Address in use, permission denied, or similar.
        """
        spec = self.spec
        try:
            self._server = await asyncio.start_server(
                self._handle_client,
                host=spec.listen_host,
                port=spec.listen_port,
                start_serving=False,
            )
            await self._server.start_serving()
        except OSError as e:
            if self._server is not None:
                self._server.close()
                self._server = None
            if e.errno == errno.EADDRINUSE:
                reason = "address already in use"
            elif e.errno == errno.EACCES:
                reason = "permission denied"
            else:
                reason = e.strerror or str(e)
            raise BindError(spec.listen_host, spec.listen_port, reason) from e

        addrs = ", ".join(str(sock.getsockname()) for sock in self._server.sockets)
        logger.info(f"{self.log_prefix} Listening on {addrs} -> {spec.target} via {spec.proxy}")

    async def serve_forever(self) -> None:
        """Accept clients until the listener is closed or the task cancelled."""
        if self._server is None:
            await self.start()
        try:
            await self._server.serve_forever()
        except asyncio.CancelledError:
            logger.debug(f"{self.log_prefix} Accept loop cancelled.")
            raise

    async def close(self) -> None:
        """Stop accepting and tear down every in-flight session."""
        if self._server is not None:
            self._server.close()
        sessions = list(self._sessions)
        for task in sessions:
            task.cancel()
        if sessions:
            await asyncio.gather(*sessions, return_exceptions=True)
        if self._server is not None:
            await self._server.wait_closed()
        logger.info(f"{self.log_prefix} Listener closed.")

    async def _handle_client(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        """Handle one accepted client: handshake, relay, cleanup."""
        task = asyncio.current_task()
        self._sessions.add(task)

        session = Session(
            session_id=self.counter.next_id(),
            listen_port=self.spec.listen_port,
            peer=writer.get_extra_info("peername"),
            client_reader=reader,
            client_writer=writer,
        )
        log_prefix = session.log_prefix
        self.counter.opened()
        failed = False
        logger.info(f"{log_prefix} New connection from {session.peer}.")

        try:
            try:
                tunnel = await Connector(self.spec, log_prefix).dial()
            except ProxyUnreachable as e:
                failed = True
                logger.warning(f"{log_prefix} {e}")
                return
            except ProxyRejected as e:
                failed = True
                logger.warning(f"{log_prefix} {e} (target {self.spec.target})")
                return

            session.tunnel_reader = tunnel.reader
            session.tunnel_writer = tunnel.writer
            session.state = SessionState.RELAYING
            logger.info(f"{log_prefix} Tunnel to {self.spec.target} established.")

            result = await Relay(
                reader, writer, tunnel.reader, tunnel.writer, log_prefix
            ).run()
            self.counter.bytes_up += result.bytes_up
            self.counter.bytes_down += result.bytes_down
            failed = result.error is not None
            logger.info(
                f"{log_prefix} Session ended "
                f"(sent {result.bytes_up}B, received {result.bytes_down}B)."
            )

        except asyncio.CancelledError:
            logger.debug(f"{log_prefix} Session cancelled.")
            raise

        except Exception as e:
            failed = True
            logger.error(f"{log_prefix} Unexpected error in session: {e}")
            logger.debug(format_traceback(e))

        finally:
            await close_writer(writer)
            if session.tunnel_writer is not None:
                await close_writer(session.tunnel_writer)
            session.state = SessionState.CLOSED
            self.counter.closed(failed=failed)
            self._sessions.discard(task)
            logger.debug(f"{log_prefix} Cleaned up ({self.counter.summary()}).")
