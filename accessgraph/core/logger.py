"""Logging infrastructure for AccessGraph.

Console logging for the package, a size-rotated log file when enabled,
and the name of the logger that carries audit escalations.
"""

import logging
import logging.handlers
import os
from typing import List

from accessgraph.core.config import Settings

ESCALATION_LOGGER = "accessgraph.audit.escalation"

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"
LOG_FILE_MAX_BYTES = 10485760  # 10MB
LOG_FILE_BACKUPS = 5


def setup_logger(
    name: str,
    level: str = "INFO",
    log_dir: str = "./logs",
    file_logging: bool = False,
) -> logging.Logger:
    """Attach a console handler, and optionally a rotating file, to a logger.

    Raises:
        ValueError: If ``level`` is not a standard logging level name
    """
    level_value = logging.getLevelName(level.upper())
    if not isinstance(level_value, int):
        raise ValueError(
            f"Invalid log level: {level}. "
            f"Must be one of: DEBUG, INFO, WARNING, ERROR, CRITICAL"
        )
    logger = logging.getLogger(name)
    logger.setLevel(level_value)

    # Reconfiguring only changes the level
    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if file_logging:
        os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.handlers.RotatingFileHandler(
            os.path.join(log_dir, f"{name}.log"),
            maxBytes=LOG_FILE_MAX_BYTES,
            backupCount=LOG_FILE_BACKUPS,
        ))
    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger


def configure_from_settings(settings: Settings) -> logging.Logger:
    """Configure the package root logger from application settings."""
    return setup_logger(
        "accessgraph",
        log_dir=settings.log_dir,
        level=settings.log_level,
        file_logging=settings.log_to_file,
    )
