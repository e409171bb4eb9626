"""
Apache Common and Combined Log Format line builders.

Both formats carry one extra trailing field with the request latency in
milliseconds::

    host - user [02/Jan/2017:20:07:27 +0100] "GET / HTTP/1.1" 200 13 12.000ms
    host - user [...] "GET / HTTP/1.1" 200 13 12.000ms "referrer" "user-agent"

Lines are assembled as bytes. The request target, referrer and user agent
are client-controlled and go through ``quote()``; the other fields are
written as-is.
"""

import logging
from collections.abc import Callable
from datetime import datetime
from typing import BinaryIO

from accesslog.record import LogRecord

logger = logging.getLogger(__name__)

_MONTHS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)

_SHORT_ESCAPES = {
    "\a": b"\\a",
    "\b": b"\\b",
    "\f": b"\\f",
    "\n": b"\\n",
    "\r": b"\\r",
    "\t": b"\\t",
    "\v": b"\\v",
}


# ── Escaping ───────────────────────────────────────────────────────────

def _to_bytes(value: bytes | str) -> bytes:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    try:
        return value.encode("utf-8", "surrogateescape")
    except UnicodeEncodeError:
        # Lone surrogates outside the surrogateescape range
        return value.encode("utf-8", "surrogatepass")


def _utf8_width(lead: int) -> int:
    """Sequence length announced by a UTF-8 lead byte, 0 if it can never start one."""
    if lead < 0x80:
        return 1
    if 0xC2 <= lead <= 0xDF:
        return 2
    if 0xE0 <= lead <= 0xEF:
        return 3
    if 0xF0 <= lead <= 0xF4:
        return 4
    return 0


def _append_char(buf: bytearray, char: str) -> None:
    if char == '"' or char == "\\":
        buf += b"\\" + char.encode("ascii")
        return
    if char.isprintable():
        buf += char.encode("utf-8")
        return
    short = _SHORT_ESCAPES.get(char)
    if short is not None:
        buf += short
        return
    code = ord(char)
    if code < 0x20:
        buf += b"\\x%02x" % code
    elif code < 0x10000:
        buf += b"\\u%04x" % code
    else:
        buf += b"\\U%08x" % code


def quote(value: bytes | str) -> bytes:
    """
    Escape ``value`` for use inside a double-quoted log field.

    ``"`` and ``\\`` are backslashed, printable characters are kept as
    UTF-8, common control characters use their short escapes (``\\n``,
    ``\\t``, ...), other control bytes become ``\\xHH`` and remaining
    non-printable characters become ``\\uHHHH`` or ``\\UHHHHHHHH``.

    Bytes that do not decode as UTF-8 are written as ``\\xHH`` one byte
    at a time, so nothing is dropped.
    """
    data = _to_bytes(value)
    buf = bytearray()
    pos, end = 0, len(data)
    while pos < end:
        lead = data[pos]
        width = _utf8_width(lead)
        try:
            char = data[pos:pos + width].decode("utf-8") if width else None
        except UnicodeDecodeError:
            char = None
        if char is None:
            buf += b"\\x%02x" % lead
            pos += 1
            continue
        _append_char(buf, char)
        pos += width
    return bytes(buf)


# ── Fields ─────────────────────────────────────────────────────────────

def pretty_duration(elapsed_ns: int) -> str:
    """Render nanoseconds as fractional milliseconds, e.g. ``12.000ms``."""
    return "%.3fms" % (elapsed_ns / 1e6)


def format_timestamp(ts: datetime) -> str:
    """
    Render ``ts`` as ``02/Jan/2006:15:04:05 -0700``.

    Month names are fixed English abbreviations regardless of locale.
    Naive datetimes are taken as local time.
    """
    if ts.tzinfo is None:
        ts = ts.astimezone()
    offset = int(ts.utcoffset().total_seconds())
    sign = "-" if offset < 0 else "+"
    hours, rest = divmod(abs(offset), 3600)
    return "%02d/%s/%04d:%02d:%02d:%02d %s%02d%02d" % (
        ts.day, _MONTHS[ts.month - 1], ts.year,
        ts.hour, ts.minute, ts.second,
        sign, hours, rest // 60,
    )


# ── Lines ──────────────────────────────────────────────────────────────

def build_common_log_line(record: LogRecord) -> bytearray:
    """Build a Common Log Format line for ``record``, without the newline."""
    buf = bytearray()
    buf += _to_bytes(record.remote_host)
    buf += b" - "
    buf += _to_bytes(record.username)
    buf += b" ["
    buf += format_timestamp(record.timestamp).encode("ascii")
    buf += b'] "'
    buf += _to_bytes(record.method)
    buf += b" "
    buf += quote(record.request_target)
    buf += b" "
    buf += _to_bytes(record.protocol)
    buf += b'" '
    buf += b"%d %d " % (record.status, record.response_bytes)
    buf += pretty_duration(record.elapsed_ns).encode("ascii")
    return buf


def build_combined_log_line(record: LogRecord) -> bytearray:
    """Common line followed by the quoted referrer and user agent."""
    buf = build_common_log_line(record)
    buf += b' "'
    buf += quote(record.referrer)
    buf += b'" "'
    buf += quote(record.user_agent)
    buf += b'"'
    return buf


def _emit(out: BinaryIO, line: bytearray) -> None:
    line += b"\n"
    # Access logging is best effort: a broken sink never fails the request.
    try:
        out.write(line)
        flush = getattr(out, "flush", None)
        if flush is not None:
            flush()
    except Exception:
        logger.exception("Access log write failed | sink=%r", out)


def write_common_log(out: BinaryIO, record: LogRecord) -> None:
    """Write one Common Log Format line for ``record`` to ``out``."""
    _emit(out, build_common_log_line(record))


def write_combined_log(out: BinaryIO, record: LogRecord) -> None:
    """Write one Combined Log Format line for ``record`` to ``out``."""
    _emit(out, build_combined_log_line(record))


LOG_FORMATS: dict[str, Callable[[BinaryIO, LogRecord], None]] = {
    "common": write_common_log,
    "combined": write_combined_log,
}
