"""Logging setup for the API process."""

from __future__ import annotations

import logging

_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Attach a single stream handler to the ``ledgerlens`` logger tree."""

    logger = logging.getLogger("ledgerlens")
    logger.setLevel(level.upper())
    if not any(getattr(h, "_ledgerlens", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        handler._ledgerlens = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    return logger


__all__ = ["configure_logging"]
