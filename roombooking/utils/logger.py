"""Logging for the ``roombooking`` package.

Records go to stdout through a single handler on the package logger; the
root logger is left alone so embedding applications keep their own setup.
"""

from __future__ import annotations

import logging
import sys

from roombooking.utils.config import get_settings

PACKAGE_LOGGER = "roombooking"
LOG_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> logging.Logger:
    """Attach the stdout handler to the package logger if it has none yet."""
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    if not package_logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        package_logger.addHandler(handler)
        package_logger.setLevel((level or get_settings().log_level).upper())
    return package_logger


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)
