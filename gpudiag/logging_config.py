"""Logging configuration helpers for the project."""

from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger


CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}:{function}:{line}</cyan> | <level>{message}</level>"
)
FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {process}:{thread} | "
    "{name}:{function}:{line} | {message}"
)


def configure_logging(log_level: str = "WARNING", log_file: Path | None = None) -> None:
    """Configure loguru logging on stderr and, optionally, a rotating file.

    Standard output carries the report tables, so log records never go there.
    """
    log_level = log_level.upper()
    logger.remove()
    logger.add(
        sink=sys.stderr,
        format=CONSOLE_FORMAT,
        level=log_level,
    )
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(log_file),
            rotation="1 MB",
            retention=10,
            compression="zip",
            level=log_level,
            format=FILE_FORMAT,
        )
