"""
Logging setup for docrepo.

Every module logs through ``get_logger(__name__)``, so all records land under
the "docrepo" logger. ``setup_logging()`` attaches handlers to that logger
only; a host application that configures the root logger itself can skip it.

Environment:
    LOG_LEVEL     DEBUG, INFO, WARNING, ERROR (default INFO)
    LOG_TO_FILE   "true" to also write a rotating log file
    LOG_DIR       Directory for the log file (default ./logs)
"""
import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Optional

PACKAGE_LOGGER = "docrepo"

DEFAULT_LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
DEFAULT_LOG_TO_FILE = os.getenv("LOG_TO_FILE", "false").lower() == "true"
LOG_DIR = Path(os.getenv("LOG_DIR", "logs"))

CONSOLE_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s"

# Third-party loggers that are too chatty at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "asyncio")

_MAX_LOG_BYTES = 5 * 1024 * 1024
_LOG_BACKUPS = 3


def setup_logging(
    log_level: str = DEFAULT_LOG_LEVEL,
    log_file: Optional[str] = None,
    enable_file_logging: bool = DEFAULT_LOG_TO_FILE
) -> logging.Logger:
    """
    Attach console (and optionally file) handlers to the package logger.
    Calling it again replaces the handlers instead of adding more.

    Args:
        log_level: Level name for the package logger and console
        log_file: Log file path (defaults to LOG_DIR/docrepo.log)
        enable_file_logging: Also write DEBUG and above to a rotating file

    Returns:
        The package logger
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(logging.DEBUG if enable_file_logging else level)

    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt="%H:%M:%S"))
    package_logger.addHandler(console)

    if enable_file_logging:
        path = Path(log_file) if log_file else LOG_DIR / "docrepo.log"
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            path, maxBytes=_MAX_LOG_BYTES, backupCount=_LOG_BACKUPS, encoding="utf-8"
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        package_logger.addHandler(file_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return package_logger


def get_logger(name: str) -> logging.Logger:
    """Logger for a module; pass ``__name__``."""
    return logging.getLogger(name)
