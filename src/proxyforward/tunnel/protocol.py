"""
HTTP CONNECT protocol helpers.

Request sent to the proxy (CRLF line endings):

    CONNECT <target_host>:<target_port> HTTP/1.1
    Host: <target_host>:<target_port>
    User-Agent: <user_agent>
    Proxy-Authorization: Basic <base64(user:pass)>     (only with credentials)
    <blank line>

The proxy answers with a status line and headers terminated by a blank line.
Anything after that blank line is raw tunnel payload.
"""

import base64
import re
from dataclasses import dataclass

from proxyforward.models.tunnel import TunnelSpec

HEADER_TERMINATOR = b"\r\n\r\n"

_STATUS_LINE_RE = re.compile(rb"^HTTP/(\d)\.(\d) (\d{3})(?: (.*))?$")


@dataclass
class ConnectResponse:
    """Parsed proxy response head."""

    http_version: str
    status_code: int
    reason: str
    headers: list[tuple[str, str]]

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code <= 299


def basic_auth_header(user: str, password: str) -> str:
    """
    Format a Proxy-Authorization value for Basic auth.

    Args:
        user: Proxy user name.
        password: Proxy password.

    Returns:
        ``"Basic <base64(user:pass)>"``
    """
    token = base64.b64encode(f"{user}:{password}".encode("utf-8")).decode("ascii")
    return f"Basic {token}"


def build_connect_request(spec: TunnelSpec) -> bytes:
    """
    Build the CONNECT request for a tunnel spec.

    Args:
        spec: Tunnel whose target and credentials are used.

    Returns:
        Complete request head including the terminating blank line.
    """
    target = spec.target
    lines = [
        f"CONNECT {target} HTTP/1.1",
        f"Host: {target}",
        f"User-Agent: {spec.user_agent}",
    ]
    if spec.has_credentials:
        lines.append(
            f"Proxy-Authorization: {basic_auth_header(spec.proxy_user, spec.proxy_pass)}"
        )
    return "\r\n".join(lines).encode("utf-8") + HEADER_TERMINATOR


def parse_status_line(line: bytes) -> tuple[str, int, str] | None:
    """
    Parse an HTTP status line.

    Args:
        line: Raw line, with or without the trailing CRLF.

    Returns:
        (http_version, status_code, reason) or None if malformed
    """
    match = _STATUS_LINE_RE.match(line.rstrip(b"\r\n"))
    if not match:
        return None
    major, minor, code, reason = match.groups()
    return (
        f"{major.decode()}.{minor.decode()}",
        int(code),
        (reason or b"").decode("latin-1").strip(),
    )


def parse_header_line(line: bytes) -> tuple[str, str] | None:
    """Parse ``Name: value``; returns None for lines without a colon."""
    text = line.rstrip(b"\r\n").decode("latin-1")
    name, sep, value = text.partition(":")
    if not sep or not name.strip():
        return None
    return name.strip(), value.strip()


def parse_response_head(head: bytes) -> ConnectResponse | None:
    """
    Parse a full response head (status line plus headers).

    Args:
        head: Status line and header lines; each may end in CRLF or a
            bare LF, and the blank terminator line is optional.

    Returns:
        ConnectResponse or None if the status line is malformed
    """
    lines = head.splitlines()
    if not lines:
        return None
    status = parse_status_line(lines[0])
    if status is None:
        return None

    http_version, status_code, reason = status
    headers = []
    for line in lines[1:]:
        if not line:
            continue
        header = parse_header_line(line)
        if header is not None:
            headers.append(header)

    return ConnectResponse(
        http_version=http_version,
        status_code=status_code,
        reason=reason,
        headers=headers,
    )
