"""Logging helpers.

Usage example:
    from ibira.observability import configure_logging, get_logger

    configure_logging("DEBUG")
    logger = get_logger("ibira.coordinator")
    logger.debug("Joined in-flight request for %s", key)
"""

from __future__ import annotations

import logging
import time

ROOT_LOGGER_NAME = "ibira"

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

logging.getLogger(ROOT_LOGGER_NAME).addHandler(logging.NullHandler())


def get_logger(name: str) -> logging.Logger:
    """Return a logger below the ``ibira`` namespace.

    Library code never attaches handlers; output is silent until the
    application calls :func:`configure_logging` or configures logging itself.
    """
    if name != ROOT_LOGGER_NAME and not name.startswith(f"{ROOT_LOGGER_NAME}."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def configure_logging(level: int | str = logging.INFO) -> logging.Logger:
    """Attach a UTC stream handler to the ``ibira`` root logger.

    Calling this more than once only updates the level.
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    if not any(isinstance(h, logging.StreamHandler) for h in logger.handlers):
        handler = logging.StreamHandler()
        formatter = logging.Formatter(fmt=_LOG_FORMAT, datefmt=_LOG_DATE_FORMAT)
        formatter.converter = time.gmtime
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(level)
    return logger


__all__ = ["configure_logging", "get_logger"]
