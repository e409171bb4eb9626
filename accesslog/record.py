"""
Per-request access log record.

A ``LogRecord`` is built from an ASGI HTTP scope once the downstream
application has returned, so status, size and latency are already known.
It is consumed by the formatter immediately and never stored.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from urllib.parse import quote as url_quote
from urllib.parse import unquote, urlsplit

# Characters left as-is when rebuilding a path from the decoded ``scope["path"]``
_PATH_SAFE = "/!$&'()*+,;=:@"


@dataclass
class LogRecord:
    """Everything one access log line needs."""

    remote_host: str
    username: str
    timestamp: datetime
    method: str
    request_target: bytes
    protocol: str
    status: int
    response_bytes: int
    elapsed_ns: int
    referrer: bytes = b""
    user_agent: bytes = b""

    @classmethod
    def from_scope(
        cls,
        scope: Mapping[str, Any],
        *,
        timestamp: datetime,
        status: int,
        response_bytes: int,
        elapsed_ns: int,
    ) -> "LogRecord":
        """Collect request metadata from an ASGI HTTP scope."""
        headers = first_headers(scope.get("headers") or ())
        method = scope.get("method", "GET")
        protocol, major = protocol_name(scope.get("http_version", "1.1"))

        raw_target = raw_request_target(scope)
        target = raw_target

        # CONNECT over HTTP/2 identifies its target by the authority.
        # https://httpwg.org/specs/rfc7540.html#CONNECT
        if major == 2 and method == "CONNECT":
            target = headers.get(b"host", b"")
        if not target:
            target = rebuild_request_target(scope)

        return cls(
            remote_host=peer_host(scope.get("client")),
            username=request_username(raw_target),
            timestamp=timestamp,
            method=method,
            request_target=target,
            protocol=protocol,
            status=status,
            response_bytes=response_bytes,
            elapsed_ns=elapsed_ns,
            referrer=headers.get(b"referer", b""),
            user_agent=headers.get(b"user-agent", b""),
        )


def first_headers(raw_headers: Iterable[tuple[bytes, bytes]]) -> dict[bytes, bytes]:
    """Map lowercased header names to their first value."""
    headers: dict[bytes, bytes] = {}
    for name, value in raw_headers:
        headers.setdefault(bytes(name).lower(), bytes(value))
    return headers


def split_host_port(addr: str) -> tuple[str, str]:
    """
    Split ``host:port`` or ``[host]:port`` into its host and port.

    Raises ``ValueError`` when the address carries no port, has too many
    colons for an unbracketed host, or has misplaced brackets.
    """
    colon = addr.rfind(":")
    if colon < 0:
        raise ValueError(f"missing port in address {addr!r}")

    if addr.startswith("["):
        end = addr.find("]")
        if end < 0:
            raise ValueError(f"missing ']' in address {addr!r}")
        if end + 1 == len(addr):
            raise ValueError(f"missing port in address {addr!r}")
        if end + 1 != colon:
            if addr[end + 1] == ":":
                raise ValueError(f"too many colons in address {addr!r}")
            raise ValueError(f"missing port in address {addr!r}")
        host = addr[1:end]
        host_start, host_end = 1, end + 1
    else:
        host = addr[:colon]
        if ":" in host:
            raise ValueError(f"too many colons in address {addr!r}")
        host_start, host_end = 0, 0

    if "[" in addr[host_start:] or "]" in addr[host_end:]:
        raise ValueError(f"unexpected bracket in address {addr!r}")
    return host, addr[colon + 1 :]


def peer_host(client: Any) -> str:
    """
    Return the client host without its port.

    Accepts the ASGI ``(host, port)`` pair or a raw ``host:port`` string.
    A string without a parseable port is returned unchanged.
    """
    if client is None:
        return "-"
    if isinstance(client, str):
        try:
            host, _ = split_host_port(client)
        except ValueError:
            return client
        return host
    return str(client[0])


def protocol_name(http_version: str) -> tuple[str, int]:
    """Render ``"1.1"`` / ``"2"`` as ``HTTP/1.1`` / ``HTTP/2.0`` plus the major version."""
    version = http_version if "." in http_version else f"{http_version}.0"
    try:
        major = int(version.split(".", 1)[0])
    except ValueError:
        major = 1
    return f"HTTP/{version}", major


def raw_request_target(scope: Mapping[str, Any]) -> bytes:
    """The request-line target as received, or ``b""`` if the server did not keep it."""
    raw_path = scope.get("raw_path")
    if not raw_path:
        return b""
    query = scope.get("query_string") or b""
    if query:
        return bytes(raw_path) + b"?" + bytes(query)
    return bytes(raw_path)


def rebuild_request_target(scope: Mapping[str, Any]) -> bytes:
    """Reconstruct an escaped path and query from the decoded scope."""
    path = scope.get("path") or "/"
    target = url_quote(path, safe=_PATH_SAFE).encode("ascii")
    query = scope.get("query_string") or b""
    if query:
        target += b"?" + bytes(query)
    return target


def request_username(target: bytes) -> str:
    """User name embedded in an absolute-form target, or ``"-"``."""
    if b"@" not in target:
        return "-"
    try:
        url = urlsplit(target.decode("utf-8", "replace"))
        username = url.username
    except ValueError:
        return "-"
    # "//user@host/" is an origin-form path, not an authority.
    if url.scheme and username:
        return unquote(username)
    return "-"
