"""Pytest configuration and fixtures."""

import io
from datetime import datetime, timedelta, timezone

import pytest


@pytest.fixture
def sink():
    """In-memory access log sink."""
    return io.BytesIO()


@pytest.fixture
def paris_time():
    """2017-01-02 20:07:27 +0100."""
    return datetime(2017, 1, 2, 20, 7, 27, tzinfo=timezone(timedelta(hours=1)))


@pytest.fixture
def make_scope():
    """Build an ASGI HTTP scope with sensible defaults."""

    def _make_scope(
        method="GET",
        path="/",
        raw_path=None,
        query_string=b"",
        http_version="1.1",
        client=("::1", 54321),
        headers=None,
    ):
        return {
            "type": "http",
            "asgi": {"version": "3.0"},
            "http_version": http_version,
            "method": method,
            "scheme": "http",
            "path": path,
            "raw_path": path.encode() if raw_path is None else raw_path,
            "query_string": query_string,
            "root_path": "",
            "headers": headers or [],
            "client": client,
            "server": ("127.0.0.1", 8000),
        }

    return _make_scope


@pytest.fixture
def call_asgi():
    """Run an ASGI app against a scope, returning the messages it sent."""

    async def _call(app, scope):
        sent = []

        async def receive():
            return {"type": "http.request", "body": b"", "more_body": False}

        async def send(message):
            sent.append(message)

        await app(scope, receive, send)
        return sent

    return _call
