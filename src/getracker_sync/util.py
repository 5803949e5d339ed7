"""Utility functions for GE Tracker sync."""

import logging
import sys
from typing import Optional, TextIO

from .errors import ConfigurationError

PACKAGE_LOGGER = "getracker_sync"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

# Third-party loggers that are only interesting when something goes wrong
_QUIET_LOGGERS = ("aiohttp.client", "aiohttp.internal", "asyncio")


def parse_log_level(level: str) -> int:
    """Map a level name such as ``"debug"`` to its logging constant."""
    value = logging.getLevelName(level.strip().upper())
    if not isinstance(value, int):
        raise ConfigurationError(f"unknown log level {level!r}")
    return value


def setup_logging(level: str = "INFO", stream: Optional[TextIO] = None) -> logging.Logger:
    """
    Attach a single handler to the package logger.

    Calling it again replaces the handler, so the level can be changed
    without duplicated output. Standard input carries offer events, so log
    lines go to stderr unless a stream is given.

    Returns:
        The package logger
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(parse_log_level(level))

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    logger.addHandler(handler)
    logger.propagate = False

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger


def user_group(username: str) -> str:
    """Configuration group holding one user's tracked offers."""
    return f"getracker.{username.lower()}"
