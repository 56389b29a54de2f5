"""Package logger."""

from __future__ import annotations

import logging

logger = logging.getLogger("chaos_organizer")

_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def setup_logging(level: str | int = "INFO") -> None:
    """Attach a stderr handler to the package logger (CLI use only)."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    if not any(getattr(h, "_chaos_organizer", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        handler._chaos_organizer = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    logger.setLevel(level)
