"""Logging setup shared by the API server and the CLI scripts."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s | %(levelname)8s | %(name)s:%(lineno)d | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: str | int = "INFO") -> logging.Logger:
    """Attach a single stream handler to the `src` logger tree.

    Safe to call more than once; existing handlers are replaced.
    """
    logger = logging.getLogger("src")
    logger.setLevel(level if isinstance(level, int) else level.upper())
    logger.handlers.clear()

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False
    return logger
