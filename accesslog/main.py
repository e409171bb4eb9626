"""
Reference application.

FastAPI application factory wiring the access logger from settings,
with a health route to exercise it.
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, BinaryIO

from fastapi import FastAPI

from accesslog.config import Settings, get_settings, open_access_log
from accesslog.middleware import AccessLogMiddleware

logger = logging.getLogger("accesslog")


def configure_logging(level: str = "INFO") -> None:
    """
    Route ``accesslog`` diagnostics (sink failures, lifecycle) to stdout.

    Only the package logger is touched; handlers installed on the root
    logger by the hosting application are left alone. Access lines never
    pass through ``logging``.
    """
    pkg_logger = logging.getLogger("accesslog")
    pkg_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    if not any(h.get_name() == "accesslog" for h in pkg_logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(
            logging.Formatter("%(asctime)s | %(levelname)-8s | %(name)s | %(message)s")
        )
        handler.set_name("accesslog")
        pkg_logger.addHandler(handler)

    # uvicorn would otherwise log every request a second time
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def create_app(settings: Settings | None = None, sink: BinaryIO | None = None) -> FastAPI:
    """
    Build the FastAPI application.

    ``sink`` overrides the access log destination from settings. A sink
    opened here from ``access_log_file`` is closed on shutdown.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    owns_sink = sink is None and bool(settings.access_log_file)
    out = sink if sink is not None else open_access_log(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "%s v%s starting up | access_log=%s file=%s",
            settings.app_name,
            settings.app_version,
            settings.access_log_format,
            settings.access_log_file or "<stderr>",
        )
        yield
        if owns_sink:
            out.close()
        logger.info("%s shutting down", settings.app_name)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.add_middleware(
        AccessLogMiddleware,
        out=out,
        log_format=settings.access_log_format,
    )

    @app.get("/health", summary="Health Check")
    async def health_check() -> dict[str, Any]:
        """Return service health, version and access log format."""
        return {
            "status": "healthy",
            "version": settings.app_version,
            "access_log_format": settings.access_log_format,
        }

    return app
