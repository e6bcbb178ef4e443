"""Logger setup shared by every module of the service."""

from __future__ import annotations

import logging

LOGGER_NAME = "liveterm"


def get_logger(level: str | int | None = None) -> logging.Logger:
    """Return the ``liveterm`` logger, attaching a stream handler once."""
    logger = logging.getLogger(LOGGER_NAME)

    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter("[liveterm] %(levelname)s - %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)

    if level is not None:
        logger.setLevel(level)
    return logger
