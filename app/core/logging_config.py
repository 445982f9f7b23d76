# /app/core/logging_config.py

import logging
import sys

from .config import settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
BASE_LOGGER_NAME = "school_admin"


def setup_logging(level: str = None) -> logging.Logger:
    """Configures the root handler once and returns the application's base logger."""
    level_name = (level or settings.LOG_LEVEL).upper()
    logging.basicConfig(level=level_name, format=LOG_FORMAT, stream=sys.stdout)
    logger = logging.getLogger(BASE_LOGGER_NAME)
    logger.setLevel(level_name)
    return logger


def get_logger(name: str) -> logging.Logger:
    """Returns a child of the base logger, e.g. `school_admin.student_service`."""
    return logging.getLogger(f"{BASE_LOGGER_NAME}.{name}")
