"""Logging configuration for the backend.

Core ``gigmarket`` modules log through ``logging.getLogger(__name__)``; the
API adds a single stream handler on the root logger so both end up in the
same output.
"""

import logging
import sys

from .config import get_settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def setup_logging(level: str | None = None) -> logging.Logger:
    """Configure application logging. Returns the backend logger."""
    level_val = level or get_settings().log_level
    logging.basicConfig(
        level=getattr(logging, level_val.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    return logging.getLogger("gigmarket.backend")


def get_logger(name: str) -> logging.Logger:
    """Get a logger for the given module name."""
    return logging.getLogger(f"gigmarket.backend.{name}")
