"""
Enumeration types for proxyforward.

State tags for the CONNECT handshake and for relay sessions, plus the
logging verbosity levels.
"""

from enum import Enum


# =============================================================================
# Handshake / Session Enums
# =============================================================================


class ConnectorState(str, Enum):
    """
    CONNECT handshake progress for one outbound leg.

    State transitions:
        DIALING -> SENT_CONNECT -> AWAITING_STATUS_LINE -> ESTABLISHED
        Any -> FAILED
    """

    DIALING = "dialing"  # Opening TCP to the proxy
    SENT_CONNECT = "sent_connect"  # CONNECT request written
    AWAITING_STATUS_LINE = "awaiting_status_line"  # Reading response headers
    ESTABLISHED = "established"  # 2xx received, raw pipe to target
    FAILED = "failed"  # Unreachable, rejected or malformed


class SessionState(str, Enum):
    """Lifecycle of one accepted client connection."""

    CONNECTING = "connecting"  # Connector running
    RELAYING = "relaying"  # Relay pumping bytes
    CLOSED = "closed"  # Both sockets released


# =============================================================================
# Configuration Enums
# =============================================================================


class LogLevel(str, Enum):
    """
    Logging verbosity levels.

    Levels (from most to least verbose):
        - FULL: Complete trace with detailed stack information
        - DEBUG: Debug messages and above
        - INFO: Informational messages and above
        - WARNING: Only warnings and errors
    """

    FULL = "full"
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
