"""Loguru configuration for hosts and the CLI.

The library logs through ``loguru`` under the ``certstore`` namespace and is
disabled on import; hosts opt in with :func:`configure_logging` (or
``logger.enable("certstore")`` if they already manage loguru sinks).
"""

from __future__ import annotations

import logging
import sys
from typing import Any, TextIO

from loguru import logger

DEFAULT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)


class InterceptHandler(logging.Handler):
    """Forward standard-library records (botocore, urllib3) to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        logger.opt(depth=6, exception=record.exc_info).log(level, record.getMessage())


def intercept_standard_logging(level: int = logging.WARNING) -> None:
    for name in ("botocore", "boto3", "urllib3"):
        std_logger = logging.getLogger(name)
        std_logger.handlers = [InterceptHandler()]
        std_logger.setLevel(level)
        std_logger.propagate = False


def configure_logging(
    level: str = "INFO",
    *,
    sink: TextIO | Any = sys.stderr,
    serialize: bool = False,
    intercept: bool = True,
) -> None:
    """Replace loguru's default handler with one sink and enable certstore logs."""
    logger.remove()
    logger.add(
        sink,
        level=level.upper(),
        format=DEFAULT_FORMAT,
        colorize=None,
        serialize=serialize,
        backtrace=False,
        diagnose=False,
    )
    logger.enable("certstore")
    if intercept:
        intercept_standard_logging()


__all__ = ["InterceptHandler", "configure_logging", "intercept_standard_logging", "logger"]
