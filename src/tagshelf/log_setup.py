"""Logging configuration for the command line entry point."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from .config.models import LoggingSettings

LOG_FILENAME = "tagshelf.log"
_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(
    settings: LoggingSettings,
    directory: Path | None = None,
    *,
    verbose: bool = False,
    console: Console | None = None,
) -> logging.Logger:
    """Attach file and console handlers to the ``tagshelf`` logger.

    Args:
        settings: Logging section of the configuration.
        directory: Directory for the rotating log file; no file handler when None.
        verbose: Lower the console threshold to DEBUG.
        console: Rich console used for terminal output (stderr by default).

    Returns:
        logging.Logger: The configured package logger.
    """
    logger = logging.getLogger("tagshelf")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    level = logging.getLevelName(settings.level.upper())
    if not isinstance(level, int):
        level = logging.WARNING
    logger.setLevel(logging.DEBUG if verbose else level)
    logger.propagate = False

    console_handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=False,
    )
    console_handler.setLevel(logging.DEBUG if verbose else max(level, logging.WARNING))
    logger.addHandler(console_handler)

    if directory is not None:
        directory.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            directory / LOG_FILENAME,
            maxBytes=max(1, settings.max_size_mb) * 1024 * 1024,
            backupCount=max(0, settings.backup_count),
            encoding="utf-8",
        )
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
        file_handler.setLevel(level)
        logger.addHandler(file_handler)

    return logger


__all__ = ["configure_logging", "LOG_FILENAME"]
