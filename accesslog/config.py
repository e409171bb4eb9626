"""
Centralized configuration.

Settings come from environment variables (or a ``.env`` file) with
defaults suitable for local runs. Uses Pydantic BaseSettings for
validation and type coercion.
"""

import sys
from functools import lru_cache
from typing import BinaryIO, Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_name: str = "accesslog"
    app_version: str = "0.1.0"
    log_level: str = "INFO"  # diagnostics only, access lines are unfiltered

    access_log_format: Literal["common", "combined"] = "combined"
    access_log_file: str | None = None  # unset: stderr

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()


def open_access_log(settings: Settings) -> BinaryIO:
    """
    Open the byte sink access lines are written to.

    A configured file is opened unbuffered in append mode so each line
    reaches the file in a single ``write()``.
    """
    if settings.access_log_file:
        return open(settings.access_log_file, "ab", buffering=0)
    return sys.stderr.buffer
