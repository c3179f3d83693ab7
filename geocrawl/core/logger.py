"""Logging setup shared by the CLI and the REST API.

Every module logs through ``logging.getLogger(__name__)``; configuring the
``geocrawl`` logger once at startup routes all of them to the console and to
a size-rotated file under ``.cache/``.

Examples:
    >>> from geocrawl.core.logger import get_logger
    >>> logger = get_logger("geocrawl")
    >>> logger.info("Crawl batch started")
    2026-10-18 09:12:00,123 | INFO | geocrawl | Crawl batch started
"""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

DEFAULT_LOG_FILE = Path(".cache/geocrawl.log")

# 100MB per file, 5 rotated files kept
MAX_LOG_SIZE_BYTES = 100 * 1024 * 1024
BACKUP_COUNT = 5


def _parse_level(value: str) -> int:
    level = logging.getLevelName(value.upper())
    if not isinstance(level, int):
        raise ValueError(f"Invalid log level: {value}")
    return level


def _detach_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def get_logger(
    name: str,
    log_level: str = "INFO",
    log_file: Path | None = None,
    console_level: str | None = None,
) -> logging.Logger:
    """Configure ``name`` with a console handler and a rotating file handler.

    Calling it again for the same name closes the previous handlers first, so
    a changed ``log_file`` takes effect immediately.

    Args:
        name: Logger name, normally "geocrawl"
        log_level: Base level of the logger (DEBUG, INFO, WARNING, ERROR,
            CRITICAL), case-insensitive
        log_file: Rotating log file; .cache/geocrawl.log when None. Missing
            parent directories are created.
        console_level: Level of the console handler. Defaults to log_level;
            CLI commands raise it so log lines do not break progress bars.

    Returns:
        The configured logger

    Raises:
        ValueError: If a level name is not a logging level
    """
    level = _parse_level(log_level)
    stream_level = level if console_level is None else _parse_level(console_level)

    logger = logging.getLogger(name)
    logger.setLevel(level)
    _detach_handlers(logger)

    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(stream_level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    path = log_file or DEFAULT_LOG_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        path, maxBytes=MAX_LOG_SIZE_BYTES, backupCount=BACKUP_COUNT
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    return logger
