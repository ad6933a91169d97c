"""Logging setup for command line runs."""

import logging

from sigverify.config import LOG_FORMAT, LOG_LEVEL


def setup_logging(level=None):
    """Configure the root logger once and return the package logger."""
    level = level or LOG_LEVEL
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    root.setLevel(level)

    # numba logs every compilation pass at DEBUG
    logging.getLogger("numba").setLevel(max(level, logging.WARNING))
    return logging.getLogger("sigverify")
