"""
Logging setup for Beacon.

Every module logs through a child of the ``beacon`` logger so a host
application can route, silence or re-level notification logs in one place.
"""

import logging
import logging.handlers
import sys
from pathlib import Path

ROOT_LOGGER_NAME = "beacon"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Chatty transport libraries are capped at this level unless DEBUG is requested
_THIRD_PARTY_LOGGERS = ("urllib3", "requests")


def setup_logging(
    level: str = "INFO",
    log_file: str | Path | None = None,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5
) -> logging.Logger:
    """
    Configure the ``beacon`` logger hierarchy.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional rotating log file in addition to stdout
        max_bytes: Size at which the log file rotates
        backup_count: Rotated files to keep

    Returns:
        The configured root ``beacon`` logger

    Raises:
        ValueError: If the level name is unknown
    """
    log_level = logging.getLevelName(level.upper())
    if not isinstance(log_level, int):
        raise ValueError(f"Unknown log level: {level}")

    # Create formatter with timestamp, level, module, and message
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    # Configure the beacon logger
    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(log_level)

    # Remove existing handlers
    root_logger.handlers.clear()

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # File handler with rotation (optional)
    if log_file:
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8"
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # Prevent propagation to root logger
    root_logger.propagate = False

    # Quiet transport libraries
    third_party_level = logging.DEBUG if log_level <= logging.DEBUG else logging.WARNING
    for name in _THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(third_party_level)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger under the ``beacon`` hierarchy.

    Args:
        name: Module name (typically __name__)

    Returns:
        Logger instance
    """
    # Strip "beacon." prefix if present so names are not doubled
    prefix = f"{ROOT_LOGGER_NAME}."
    if name.startswith(prefix):
        name = name[len(prefix):]

    return logging.getLogger(f"{prefix}{name}")
