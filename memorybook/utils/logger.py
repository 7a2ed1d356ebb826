"""
Logging configuration
"""
import logging
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

_ROOT_LOGGER_NAME = "memorybook"


def configure_logging(level: str = "INFO") -> logging.Logger:
    """
    Attach a console handler to the package logger and set its level.

    Safe to call more than once; the handler is only added the first time.

    Args:
        level: Log level name (e.g. "INFO", "DEBUG")

    Returns:
        The package root logger
    """
    logger = logging.getLogger(_ROOT_LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    if not logger.handlers:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(console_handler)

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get logger instance under the package namespace

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger that propagates to the package logger
    """
    if not name:
        return logging.getLogger(_ROOT_LOGGER_NAME)
    if name == _ROOT_LOGGER_NAME or name.startswith(_ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{_ROOT_LOGGER_NAME}.{name}")
