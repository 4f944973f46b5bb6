"""
Tunneling engine: CONNECT handshake, byte relay, listeners and the engine
that runs them.
"""

from proxyforward.tunnel.connector import Connector, EstablishedTunnel
from proxyforward.tunnel.engine import Engine
from proxyforward.tunnel.listener import Listener
from proxyforward.tunnel.protocol import (
    ConnectResponse,
    basic_auth_header,
    build_connect_request,
    parse_response_head,
    parse_status_line,
)
from proxyforward.tunnel.relay import Relay, RelayResult

__all__ = [
    "ConnectResponse",
    "Connector",
    "Engine",
    "EstablishedTunnel",
    "Listener",
    "Relay",
    "RelayResult",
    "basic_auth_header",
    "build_connect_request",
    "parse_response_head",
    "parse_status_line",
]
