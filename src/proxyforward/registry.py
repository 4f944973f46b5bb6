"""
Tunnel registry.

Collects TunnelSpecs before the engine starts, rejecting malformed specs and
duplicate listen ports. Once frozen the registry is read-only.
"""

from proxyforward.errors import ConfigurationError
from proxyforward.models.tunnel import TunnelSpec
from proxyforward.utils.logger import get_logger

logger = get_logger(__name__)


def _check_port(value: int, field_name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{field_name} must be an integer, got {value!r}")
    if not 1 <= value <= 65535:
        raise ConfigurationError(f"{field_name} out of range (1-65535): {value}")


def _check_header_text(value: str, field_name: str) -> None:
    """Reject characters that would end or split a CONNECT request line."""
    if any(ord(ch) < 0x20 or ord(ch) == 0x7F for ch in value):
        raise ConfigurationError(f"{field_name} contains control characters")


def validate_spec(spec: TunnelSpec) -> None:
    """
    Check the required fields of a single spec.

    Raises:
        ConfigurationError: If any field is missing or out of range.
    """
    if not spec.listen_host:
        raise ConfigurationError("listen host is empty")
    _check_port(spec.listen_port, "listen port")

    if not spec.target_host:
        raise ConfigurationError(f"tunnel :{spec.listen_port} has no target host")
    _check_header_text(spec.target_host, "target host")
    if " " in spec.target_host:
        raise ConfigurationError("target host must not contain spaces")
    _check_port(spec.target_port, "target port")

    if not spec.proxy_host:
        raise ConfigurationError(f"tunnel :{spec.listen_port} has no proxy host")
    _check_port(spec.proxy_port, "proxy port")

    if (spec.proxy_user is None) != (spec.proxy_pass is None):
        raise ConfigurationError(
            "proxy user and password must be given together"
        )
    if spec.proxy_user is not None and ":" in spec.proxy_user:
        raise ConfigurationError("proxy user must not contain ':'")

    _check_header_text(spec.user_agent, "user agent")

    if spec.handshake_timeout <= 0 or spec.connect_timeout <= 0:
        raise ConfigurationError("timeouts must be positive")


class TunnelRegistry:
    """Ordered set of validated TunnelSpecs keyed by listen port."""

    def __init__(self):
        self._specs: list[TunnelSpec] = []
        self._ports: set[int] = set()
        self._frozen = False

    def register(self, spec: TunnelSpec) -> int:
        """
        Validate and add a spec.

        Args:
            spec: Tunnel to add.

        Returns:
            Registration handle (index of the spec in ``specs()``).

        Raises:
            ConfigurationError: On a malformed spec, a duplicate listen port,
                or if the registry is frozen.
        """
        if self._frozen:
            raise ConfigurationError("registry is frozen; engine already started")

        validate_spec(spec)

        if spec.listen_port in self._ports:
            raise ConfigurationError(
                f"listen port {spec.listen_port} is configured more than once"
            )

        self._ports.add(spec.listen_port)
        self._specs.append(spec)
        logger.debug(f"Registered tunnel {spec.describe()}")
        return len(self._specs) - 1

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def specs(self) -> tuple[TunnelSpec, ...]:
        return tuple(self._specs)

    def __len__(self) -> int:
        return len(self._specs)
