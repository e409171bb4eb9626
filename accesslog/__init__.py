"""Apache Common/Combined access logging for ASGI applications."""

from accesslog.formatter import (
    build_combined_log_line,
    build_common_log_line,
    pretty_duration,
    quote,
    write_combined_log,
    write_common_log,
)
from accesslog.middleware import (
    AccessLogMiddleware,
    CombinedLoggerMiddleware,
    CommonLoggerMiddleware,
    ResponseRecorder,
    combined_logger,
    common_logger,
)
from accesslog.record import LogRecord

__all__ = [
    "AccessLogMiddleware",
    "CombinedLoggerMiddleware",
    "CommonLoggerMiddleware",
    "LogRecord",
    "ResponseRecorder",
    "build_combined_log_line",
    "build_common_log_line",
    "combined_logger",
    "common_logger",
    "pretty_duration",
    "quote",
    "write_combined_log",
    "write_common_log",
]
