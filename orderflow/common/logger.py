"""Logging setup for the order workflow.

Module loggers (``logging.getLogger(__name__)``) all hang off the
``orderflow`` package logger, so configuring that one logger routes every
workflow, persistence and notification message.
"""

import logging
import logging.handlers
import os
from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from orderflow.core.config import Settings

PACKAGE_LOGGER = "orderflow"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"
ISO_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

# Loggers of libraries the workflow drives, kept quiet unless debugging
_LIBRARY_LOGGERS = ("aiosmtplib", "sqlalchemy.engine")


def _parse_level(level: str) -> int:
    level_upper = level.upper()
    if level_upper not in LOG_LEVELS:
        raise ValueError(f"Invalid log level: {level}. Must be one of: {', '.join(LOG_LEVELS)}")
    return getattr(logging, level_upper)


def _build_handlers(
    name: str,
    log_dir: Optional[str],
    max_bytes: int,
    backup_count: int,
) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        handlers.append(
            logging.handlers.RotatingFileHandler(
                os.path.join(log_dir, f"{name}.log"),
                maxBytes=max_bytes,
                backupCount=backup_count,
            )
        )
    return handlers


def setup_logger(
    name: str = PACKAGE_LOGGER,
    level: str = "INFO",
    *,
    log_dir: Optional[str] = None,
    log_format: str = DEFAULT_FORMAT,
    max_bytes: int = 10485760,  # 10MB
    backup_count: int = 5,
) -> logging.Logger:
    """Set up a logger with a console handler and, given ``log_dir``, a rotating file.

    Calling it again only updates the level; handlers are attached once.

    Raises:
        ValueError: If ``level`` is not a standard level name
    """
    logger = logging.getLogger(name)
    logger.setLevel(_parse_level(level))

    if logger.handlers:
        return logger

    formatter = logging.Formatter(log_format, datefmt=ISO_DATE_FORMAT)
    for handler in _build_handlers(name, log_dir, max_bytes, backup_count):
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def configure_logging(settings: "Settings") -> logging.Logger:
    """Configure the package logger from settings."""
    logger = setup_logger(
        PACKAGE_LOGGER,
        settings.log_level,
        log_dir=settings.log_dir if settings.log_to_file else None,
    )

    library_level = logging.DEBUG if settings.debug else logging.WARNING
    for library in _LIBRARY_LOGGERS:
        logging.getLogger(library).setLevel(library_level)

    return logger
