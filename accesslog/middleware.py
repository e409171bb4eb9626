"""
Access logging middleware.

Writes one Apache Common or Combined Log Format line per HTTP request to
a byte sink, with the request latency appended in milliseconds.

Implemented as plain ASGI middleware rather than ``BaseHTTPMiddleware`` so
the response body can be counted as it streams out. Lines are written
synchronously from the request's own task; a sink shared by concurrent
requests must accept interleaved ``write()`` calls.
"""

import time
from collections.abc import Callable
from datetime import datetime
from typing import BinaryIO

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from accesslog.formatter import LOG_FORMATS
from accesslog.record import LogRecord


class ResponseRecorder:
    """
    ASGI ``send`` wrapper that remembers the response status and body size.

    Messages are forwarded unchanged. ``status`` reads 200 until the app
    sends ``http.response.start``. Bodies handed to the server as a file
    (``http.response.pathsend``, or ``http.response.zerocopysend`` without
    a ``count``) are sized from the response ``content-length`` header.
    """

    def __init__(self, send: Send) -> None:
        self._send = send
        self._status = 200
        self._bytes_written = 0
        self._started = False
        self._content_length: int | None = None
        self._file_sent = False

    async def __call__(self, message: Message) -> None:
        kind = message["type"]
        if kind == "http.response.start":
            self._status = int(message["status"])
            self._started = True
            self._content_length = _content_length(message.get("headers") or ())
        elif kind == "http.response.body":
            self._bytes_written += len(message.get("body", b""))
        elif kind == "http.response.zerocopysend" and message.get("count") is not None:
            self._bytes_written += int(message["count"])
        elif kind in ("http.response.pathsend", "http.response.zerocopysend"):
            self._file_sent = True
        await self._send(message)

    @property
    def status(self) -> int:
        return self._status

    @property
    def bytes_written(self) -> int:
        if self._file_sent and self._content_length is not None:
            return max(self._bytes_written, self._content_length)
        return self._bytes_written

    @property
    def started(self) -> bool:
        """Whether the app has sent the response start message."""
        return self._started


def _content_length(headers) -> int | None:
    for name, value in headers:
        if bytes(name).lower() == b"content-length":
            try:
                return int(value)
            except ValueError:
                return None
    return None


class AccessLogMiddleware:
    """Log every HTTP request to ``out`` in the given log format."""

    def __init__(self, app: ASGIApp, out: BinaryIO, log_format: str = "combined") -> None:
        try:
            self.write_log = LOG_FORMATS[log_format]
        except KeyError:
            raise ValueError(
                f"Unknown access log format {log_format!r}, "
                f"expected one of: {', '.join(LOG_FORMATS)}"
            ) from None
        self.app = app
        self.out = out
        self.log_format = log_format

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        started_at = datetime.now().astimezone()
        start = time.perf_counter_ns()
        recorder = ResponseRecorder(send)
        completed = False
        try:
            await self.app(scope, receive, recorder)
            completed = True
        finally:
            # Sampled after the app is done, so elapsed is never negative.
            elapsed_ns = time.perf_counter_ns() - start
            status = recorder.status if completed or recorder.started else 500
            record = LogRecord.from_scope(
                scope,
                timestamp=started_at,
                status=status,
                response_bytes=recorder.bytes_written,
                elapsed_ns=elapsed_ns,
            )
            self.write_log(self.out, record)


class CommonLoggerMiddleware(AccessLogMiddleware):
    """Access log in Apache Common Log Format."""

    def __init__(self, app: ASGIApp, out: BinaryIO) -> None:
        super().__init__(app, out, log_format="common")


class CombinedLoggerMiddleware(AccessLogMiddleware):
    """Access log in Apache Combined Log Format."""

    def __init__(self, app: ASGIApp, out: BinaryIO) -> None:
        super().__init__(app, out, log_format="combined")


def common_logger(out: BinaryIO) -> Callable[[ASGIApp], ASGIApp]:
    """Return a wrapper that logs requests to ``out`` in Common Log Format."""

    def wrap(app: ASGIApp) -> ASGIApp:
        return CommonLoggerMiddleware(app, out)

    return wrap


def combined_logger(out: BinaryIO) -> Callable[[ASGIApp], ASGIApp]:
    """Return a wrapper that logs requests to ``out`` in Combined Log Format."""

    def wrap(app: ASGIApp) -> ASGIApp:
        return CombinedLoggerMiddleware(app, out)

    return wrap
