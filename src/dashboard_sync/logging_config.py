"""Logging configuration for dashboard-sync.

Library code only calls `logger.*`; the command line entry point calls `configure_logger()` once.
Timestamps are rendered in UTC so logs from hosts in different timezones can be compared.
"""

import sys
from typing import Literal

from loguru import logger

LogLevel = Literal["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"]

DEFAULT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS!UTC}Z</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)


def configure_logger(
    level: LogLevel = "INFO",
    *,
    format_string: str | None = None,
    colorize: bool | None = None,
) -> None:
    """Replace every loguru handler with a single stderr handler.

    Args:
        level: The minimum log level to display.
        format_string: Custom format string for log messages. If None, uses `DEFAULT_FORMAT`.
        colorize: Whether to use colored output. If None, loguru decides based on the terminal.

    Example:
        ```python
        from dashboard_sync.logging_config import configure_logger

        configure_logger("DEBUG")
        ```
    """
    logger.remove()

    logger.add(
        sys.stderr,
        level=level,
        format=format_string or DEFAULT_FORMAT,
        colorize=colorize,
    )


__all__ = [
    "DEFAULT_FORMAT",
    "LogLevel",
    "configure_logger",
]
