"""Per-connection session state and the shared diagnostics counter."""

import asyncio
import itertools
from dataclasses import dataclass, field

from proxyforward.models.enums import SessionState


@dataclass
class SessionCounter:
    """
    Session statistics shared by all listeners of one engine.

    Only touched from the event loop thread, so no locking is needed.
    """

    active: int = 0
    total: int = 0
    failed: int = 0
    bytes_up: int = 0
    bytes_down: int = 0
    _ids: itertools.count = field(default_factory=lambda: itertools.count(1))

    def next_id(self) -> int:
        return next(self._ids)

    def opened(self) -> None:
        self.active += 1
        self.total += 1

    def closed(self, failed: bool = False) -> None:
        self.active -= 1
        if failed:
            self.failed += 1

    def summary(self) -> str:
        return (
            f"active={self.active} total={self.total} failed={self.failed} "
            f"up={self.bytes_up}B down={self.bytes_down}B"
        )


@dataclass
class Session:
    """One accepted client connection and, once established, its tunnel."""

    session_id: int
    listen_port: int
    peer: tuple | None
    client_reader: asyncio.StreamReader
    client_writer: asyncio.StreamWriter
    tunnel_reader: asyncio.StreamReader | None = None
    tunnel_writer: asyncio.StreamWriter | None = None
    state: SessionState = SessionState.CONNECTING

    @property
    def log_prefix(self) -> str:
        return f"[:{self.listen_port} #{self.session_id}]"
