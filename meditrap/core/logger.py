"""Logging setup for the MediTrap API process.

Configured once at startup from Settings. Module loggers created with
``logging.getLogger(__name__)`` under the ``meditrap`` namespace propagate
to the logger configured here.
"""

import logging
import logging.handlers
import os

from meditrap.core.config import Settings

ROOT_LOGGER = "meditrap"
DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"
ISO_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

# Third-party loggers that are chatty at INFO
NOISY_LOGGERS = ("passlib", "aiosmtplib", "sqlalchemy.engine")


def _resolve_level(level: str) -> int:
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        raise ValueError(
            f"Invalid log level: {level}. "
            f"Must be one of: DEBUG, INFO, WARNING, ERROR, CRITICAL"
        )
    return resolved


def setup_logger(
    name: str = ROOT_LOGGER,
    log_dir: str = "logs",
    level: str = "INFO",
    file_logging: bool = False,
    console_logging: bool = True,
    max_bytes: int = 10485760,  # 10MB
    backup_count: int = 5,
) -> logging.Logger:
    """Attach console and rotating-file handlers to a logger.

    Calling it again only updates the level, so repeated app imports in one
    process never duplicate output.

    Args:
        name: Logger name
        log_dir: Directory for ``<name>.log``
        level: Logging level name
        file_logging: Write to a rotating file under ``log_dir``
        console_logging: Write to stderr
        max_bytes: Maximum log file size before rotation
        backup_count: Number of rotated files to keep

    Returns:
        Configured logger instance

    Raises:
        ValueError: Unknown level name
    """
    logger = logging.getLogger(name)
    logger.setLevel(_resolve_level(level))
    if logger.handlers:
        return logger

    formatter = logging.Formatter(DEFAULT_FORMAT, datefmt=ISO_DATE_FORMAT)

    if file_logging:
        os.makedirs(log_dir, exist_ok=True)
        handler = logging.handlers.RotatingFileHandler(
            os.path.join(log_dir, f"{name}.log"),
            maxBytes=max_bytes,
            backupCount=backup_count,
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    if console_logging:
        handler = logging.StreamHandler()
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def configure_logging(settings: Settings) -> logging.Logger:
    """Configure the ``meditrap`` logger and quiet noisy dependencies."""
    logger = setup_logger(
        ROOT_LOGGER,
        log_dir=settings.log_dir,
        level=settings.log_level,
        file_logging=settings.log_to_file,
    )
    floor = max(logging.WARNING, logger.level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(floor)
    return logger
