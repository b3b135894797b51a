"""Logging for the allocation engine, its API and helper scripts.

All loggers live under the ``bedalloc`` tree and share one stdout handler,
so a run's snapshot, rejection and commit lines read as a single stream.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

from bedalloc.utils.config import get_settings


ROOT_LOGGER_NAME = "bedalloc"
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

_handler: Optional[logging.Handler] = None


def _resolve_level(level: Optional[str]) -> int:
    name = (level or get_settings().log_level).upper()
    resolved = logging.getLevelName(name)
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {name}")
    return resolved


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """Attach the shared handler once; later calls only change the level.

    ``create_app`` calls this with the configured level after module-level
    loggers already exist.
    """
    global _handler

    root = logging.getLogger(ROOT_LOGGER_NAME)
    if _handler is None:
        _handler = logging.StreamHandler(sys.stdout)
        _handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(_handler)
    root.setLevel(_resolve_level(level))
    return root


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the ``bedalloc`` tree.

    Entry-point modules (``app``, ``main``, scripts) are nested under it too.
    """
    if _handler is None:
        configure_logging()
    if name != ROOT_LOGGER_NAME and not name.startswith(f"{ROOT_LOGGER_NAME}."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)
