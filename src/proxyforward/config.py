"""
proxyforward configuration.

Parses the command line forms (``port:host:hostport``, ``host[:port]``,
``user:pass``) into TunnelSpecs and bundles them into one immutable
ForwardConfig that is passed explicitly to the engine.
"""

from dataclasses import dataclass

from proxyforward.errors import ConfigurationError
from proxyforward.models.enums import LogLevel
from proxyforward.models.tunnel import (
    ALL_INTERFACES_HOST,
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_HANDSHAKE_TIMEOUT,
    DEFAULT_PROXY_PORT,
    DEFAULT_USER_AGENT,
    LOOPBACK_HOST,
    TunnelSpec,
)
from proxyforward.registry import TunnelRegistry

RELAY_BUFFER_SIZE = 65536
MAX_HEADER_BYTES = 65536


@dataclass(frozen=True)
class ForwardConfig:
    """Validated process configuration."""

    tunnels: tuple[TunnelSpec, ...]
    log_level: LogLevel = LogLevel.WARNING

    @property
    def local_only(self) -> bool:
        return all(spec.local_only for spec in self.tunnels)


# =============================================================================
# Parsers
# =============================================================================


def _parse_port(text: str, what: str) -> int:
    if not text.isdigit():
        raise ConfigurationError(f"invalid {what} {text!r}")
    port = int(text)
    if not 1 <= port <= 65535:
        raise ConfigurationError(f"{what} out of range (1-65535): {port}")
    return port


def _split_host_port(text: str, what: str) -> tuple[str, str | None]:
    """
    Split ``host[:port]`` where host may be a bracketed IPv6 literal.

    Returns the bare host and the port text (None if absent).
    """
    if text.startswith("["):
        end = text.find("]")
        if end == -1:
            raise ConfigurationError(f"unterminated IPv6 literal in {what} {text!r}")
        host = text[1:end]
        rest = text[end + 1 :]
        if not rest:
            return host, None
        if not rest.startswith(":"):
            raise ConfigurationError(f"invalid {what} {text!r}")
        return host, rest[1:]

    if text.count(":") > 1:
        raise ConfigurationError(
            f"invalid {what} {text!r}; wrap IPv6 addresses in brackets"
        )
    host, sep, port = text.partition(":")
    return host, (port if sep else None)


def parse_proxy(text: str) -> tuple[str, int]:
    """
    Parse a proxy address ``host[:port]``.

    The port defaults to 8080 when omitted.
    """
    if not text:
        raise ConfigurationError("no proxy given")
    host, port = _split_host_port(text, "proxy")
    if not host:
        raise ConfigurationError(f"proxy {text!r} has no host")
    if port is None:
        return host, DEFAULT_PROXY_PORT
    return host, _parse_port(port, "proxy port")


def parse_credentials(text: str | None) -> tuple[str | None, str | None]:
    """Parse ``user:pass``; the password may itself contain colons."""
    if text is None:
        return None, None
    user, sep, password = text.partition(":")
    if not sep or not user:
        raise ConfigurationError("proxy credentials must be given as user:pass")
    return user, password


def parse_tunnel(text: str) -> tuple[int, str, int]:
    """
    Parse a tunnel triple ``port:host:hostport``.

    Returns:
        (listen_port, target_host, target_port)
    """
    port_text, sep, rest = text.partition(":")
    if not sep:
        raise ConfigurationError(f"malformed tunnel {text!r}; expected port:host:hostport")
    listen_port = _parse_port(port_text, "listen port")

    host, target_port = _split_host_port(rest, "tunnel target")
    if not host or target_port is None:
        raise ConfigurationError(f"malformed tunnel {text!r}; expected port:host:hostport")
    return listen_port, host, _parse_port(target_port, "target port")


# =============================================================================
# Builder
# =============================================================================


def build_config(
    tunnels: list[str],
    proxy: str,
    proxy_auth: str | None = None,
    local_only: bool = False,
    user_agent: str = DEFAULT_USER_AGENT,
    handshake_timeout: float = DEFAULT_HANDSHAKE_TIMEOUT,
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    log_level: LogLevel = LogLevel.WARNING,
) -> ForwardConfig:
    """
    Build a ForwardConfig from raw option values.

    Every tunnel is validated through a TunnelRegistry, so duplicate listen
    ports and malformed fields are rejected before anything binds.

    Raises:
        ConfigurationError: On any invalid value.
    """
    if not tunnels:
        raise ConfigurationError("at least one tunnel is required")

    proxy_host, proxy_port = parse_proxy(proxy)
    proxy_user, proxy_pass = parse_credentials(proxy_auth)
    listen_host = LOOPBACK_HOST if local_only else ALL_INTERFACES_HOST

    registry = TunnelRegistry()
    for text in tunnels:
        listen_port, target_host, target_port = parse_tunnel(text)
        registry.register(
            TunnelSpec(
                listen_port=listen_port,
                target_host=target_host,
                target_port=target_port,
                proxy_host=proxy_host,
                proxy_port=proxy_port,
                listen_host=listen_host,
                proxy_user=proxy_user,
                proxy_pass=proxy_pass,
                user_agent=user_agent,
                handshake_timeout=handshake_timeout,
                connect_timeout=connect_timeout,
            )
        )
    registry.freeze()

    return ForwardConfig(tunnels=registry.specs(), log_level=log_level)
