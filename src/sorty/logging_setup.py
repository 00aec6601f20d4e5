"""Logging configuration for the Sorty CLI."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

from sorty.config.models import LoggingSettings

LOG_FILENAME = "sorty.log"
_FILE_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
_HANDLER_MARKER = "_sorty_handler"


def _level_for(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.WARNING


def configure_logging(
    settings: LoggingSettings,
    log_path: Optional[Path] = None,
    *,
    console: Optional[Console] = None,
) -> logging.Logger:
    """Install console and rotating-file handlers on the ``sorty`` logger.

    Calling this again replaces the handlers installed by a previous call.

    Args:
        settings: Logging configuration section.
        log_path: File receiving a rotating copy of the log; skipped when ``None``.
        console: Rich console for terminal output; defaults to stderr.

    Returns:
        logging.Logger: The configured package logger.
    """
    level = _level_for(settings.level)
    logger = logging.getLogger("sorty")
    logger.setLevel(level)
    logger.propagate = False

    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_MARKER, False):
            logger.removeHandler(handler)
            handler.close()

    terminal = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    terminal.setLevel(level)
    setattr(terminal, _HANDLER_MARKER, True)
    logger.addHandler(terminal)

    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        rotating = RotatingFileHandler(
            log_path,
            maxBytes=max(settings.max_size_mb, 1) * 1024 * 1024,
            backupCount=settings.backup_count,
            encoding="utf-8",
        )
        rotating.setLevel(min(level, logging.INFO))
        rotating.setFormatter(logging.Formatter(_FILE_FORMAT))
        setattr(rotating, _HANDLER_MARKER, True)
        logger.addHandler(rotating)
        if rotating.level < logger.level:
            logger.setLevel(rotating.level)

    return logger


__all__ = ["LOG_FILENAME", "configure_logging"]
