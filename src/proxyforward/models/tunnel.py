"""
Tunnel specification model.

A TunnelSpec is one forwarding rule: a local listen address, the target the
proxy should CONNECT to, and the proxy itself. Specs are built once at
startup and never mutated afterwards.
"""

from dataclasses import dataclass

from proxyforward import __version__

DEFAULT_PROXY_PORT = 8080
DEFAULT_HANDSHAKE_TIMEOUT = 30.0  # seconds to wait for the proxy's response
DEFAULT_CONNECT_TIMEOUT = 15.0  # seconds to wait for TCP connect to the proxy
DEFAULT_USER_AGENT = f"proxyforward/{__version__}"

LOOPBACK_HOST = "127.0.0.1"
ALL_INTERFACES_HOST = "0.0.0.0"


@dataclass(frozen=True)
class TunnelSpec:
    """Immutable description of one local port -> proxy -> target rule."""

    listen_port: int
    target_host: str
    target_port: int
    proxy_host: str
    proxy_port: int = DEFAULT_PROXY_PORT
    listen_host: str = ALL_INTERFACES_HOST
    proxy_user: str | None = None
    proxy_pass: str | None = None
    user_agent: str = DEFAULT_USER_AGENT
    handshake_timeout: float = DEFAULT_HANDSHAKE_TIMEOUT
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT

    @property
    def has_credentials(self) -> bool:
        return self.proxy_user is not None and self.proxy_pass is not None

    @property
    def local_only(self) -> bool:
        return self.listen_host == LOOPBACK_HOST

    @property
    def target(self) -> str:
        """Target authority as written in the CONNECT request line."""
        return format_authority(self.target_host, self.target_port)

    @property
    def proxy(self) -> str:
        return format_authority(self.proxy_host, self.proxy_port)

    def describe(self) -> str:
        """Short human readable form, e.g. ``0.0.0.0:2222 -> host:22 via proxy:8080``."""
        return (
            f"{format_authority(self.listen_host, self.listen_port)} -> "
            f"{self.target} via {self.proxy}"
        )


def format_authority(host: str, port: int) -> str:
    """Join host and port, bracketing IPv6 literals."""
    if ":" in host and not host.startswith("["):
        return f"[{host}]:{port}"
    return f"{host}:{port}"
