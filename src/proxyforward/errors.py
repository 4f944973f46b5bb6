"""proxyforward exception classes."""


class ProxyForwardError(Exception):
    """Base exception for proxyforward."""

    pass


class ConfigurationError(ProxyForwardError):
    """Invalid tunnel, proxy or credential configuration."""

    pass


class BindError(ProxyForwardError):
    """A listener could not bind its local address."""

    def __init__(self, host: str, port: int, reason: str):
        self.host = host
        self.port = port
        self.reason = reason
        super().__init__(f"Cannot bind {host}:{port}: {reason}")


class ProxyUnreachable(ProxyForwardError):
    """The proxy could not be reached, or the handshake I/O failed."""

    def __init__(self, proxy_host: str, proxy_port: int, reason: str):
        self.proxy_host = proxy_host
        self.proxy_port = proxy_port
        self.reason = reason
        super().__init__(f"Proxy {proxy_host}:{proxy_port} unreachable: {reason}")


class ProxyRejected(ProxyForwardError):
    """The proxy answered the CONNECT request with something other than 2xx."""

    def __init__(self, status_code: int | None, reason: str):
        self.status_code = status_code
        self.reason = reason
        if status_code is None:
            super().__init__(f"Proxy rejected tunnel: {reason}")
        else:
            super().__init__(f"Proxy rejected tunnel: {status_code} {reason}")


class RelayIOError(ProxyForwardError):
    """Read or write failure while relaying an established session."""

    def __init__(self, direction: str, cause: BaseException):
        self.direction = direction
        self.cause = cause
        super().__init__(f"Relay {direction} failed: {cause}")
