"""
Logging setup shared by every copilot module.

All pipeline loggers write one line per event to stdout:

    2024-05-01 12:00:00 | INFO     | src.copilot.service | Copilot.ask | question=... | rows=3
"""
from __future__ import annotations

import logging
import sys
from typing import Any

from src.core.config import get_settings

_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_MAX_FIELD_CHARS = 120


def get_logger(name: str) -> logging.Logger:
    settings = get_settings()
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        logger.addHandler(handler)
    logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    return logger


def fields(**values: Any) -> str:
    """Render ``key=value`` pairs joined with `` | ``; long values are clipped."""
    parts = []
    for key, value in values.items():
        text = f"{value:.2f}" if isinstance(value, float) else str(value)
        if len(text) > _MAX_FIELD_CHARS:
            text = text[: _MAX_FIELD_CHARS - 3] + "..."
        parts.append(f"{key}={text}")
    return " | ".join(parts)
