"""
Tunnel engine.

Owns one Listener per TunnelSpec. All listeners are bound together at
startup (a single bind failure aborts startup and releases the others), then
served concurrently until shutdown.
"""

import asyncio

from proxyforward.config import ForwardConfig
from proxyforward.errors import BindError, ConfigurationError
from proxyforward.models.tunnel import TunnelSpec
from proxyforward.tunnel.listener import Listener
from proxyforward.tunnel.session import SessionCounter
from proxyforward.utils.logger import get_logger

logger = get_logger(__name__)


class Engine:
    """Runs every configured tunnel in one event loop."""

    def __init__(self, specs: tuple[TunnelSpec, ...] | list[TunnelSpec]):
        """
        Initialize the engine.

        Args:
            specs: Validated tunnel specs with unique listen ports.
        """
        self.specs = tuple(specs)
        ports = [spec.listen_port for spec in self.specs]
        if len(set(ports)) != len(ports):
            raise ConfigurationError("duplicate listen port in tunnel list")

        self.counter = SessionCounter()
        self.listeners = [Listener(spec, self.counter) for spec in self.specs]
        self._serve_tasks: list[asyncio.Task] = []
        self._stopped = asyncio.Event()
        self._running = False
        self._shutdown_requested = False

    @classmethod
    def from_config(cls, config: ForwardConfig) -> "Engine":
        return cls(config.tunnels)

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """
        Bind every listener and start accepting.

        Does nothing once shutdown has been requested.

        Raises:
            BindError: If any listener fails to bind. Listeners bound
                before the failure are closed again.
        """
        if self._shutdown_requested:
            logger.warning("Engine already shut down; not starting.")
            return

        started: list[Listener] = []
        try:
            for listener in self.listeners:
                await listener.start()
                started.append(listener)
        except BindError as e:
            logger.error(f"Startup aborted: {e}")
            for listener in started:
                await listener.close()
            raise

        if self._shutdown_requested:
            # shutdown() ran while listeners were binding
            for listener in started:
                await listener.close()
            return

        self._serve_tasks = [
            asyncio.create_task(listener.serve_forever())
            for listener in self.listeners
        ]
        self._running = True
        logger.info(f"Engine running {len(self.listeners)} tunnel(s).")

    async def serve_forever(self) -> None:
        """Start (if needed) and block until ``shutdown`` is called."""
        if not self._running:
            await self.start()
        if not self._running:
            return
        try:
            await self._stopped.wait()
        except asyncio.CancelledError:
            await self.shutdown()
            raise

    async def shutdown(self) -> None:
        """Stop accepting everywhere and close all in-flight sessions."""
        if self._shutdown_requested:
            await self._stopped.wait()
            return
        self._shutdown_requested = True
        if not self._running:
            self._stopped.set()
            return

        logger.info(f"Shutting down engine ({self.counter.summary()}).")
        self._running = False

        # Sessions must be gone before the accept loops finish: a closing
        # server waits for its connections to drain.
        await asyncio.gather(
            *(listener.close() for listener in self.listeners),
            return_exceptions=True,
        )
        for task in self._serve_tasks:
            task.cancel()
        await asyncio.gather(*self._serve_tasks, return_exceptions=True)
        self._stopped.set()

    async def __aenter__(self) -> "Engine":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()
