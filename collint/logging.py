"""Centralized logging configuration for collint."""

from __future__ import annotations

import logging
import os
from typing import Final

# Allow environment override without touching handlers
_LEVEL_NAME: Final[str] = os.getenv("COLLINT_LOG_LEVEL", "INFO").upper()
_PACKAGE_LOGGER_LEVEL: Final[int] = getattr(logging, _LEVEL_NAME, logging.INFO)


def get_logger(name: str) -> logging.Logger:
    """Return a module-level logger without altering global handlers.

    Handlers are left to the application embedding the integrator.
    """
    logger = logging.getLogger(name)
    logger.setLevel(_PACKAGE_LOGGER_LEVEL)
    return logger
