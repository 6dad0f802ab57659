"""Logging helpers for the tutorial scripts.

Provides a consistent console + file logging setup so runs can be traced
from their run.log without repeating logging boilerplate in each script.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _resolve_level(level: Union[str, int]) -> int:
    """Map a level name (or number) to a logging level constant."""
    if isinstance(level, int):
        return level
    return getattr(logging, str(level).upper(), logging.INFO)


def setup_logging(
    level: Union[str, int] = "INFO",
    log_file: Optional[Union[str, Path]] = None,
    console: bool = True,
) -> logging.Logger:
    """Configure root logging with optional file and console handlers."""
    logger = logging.getLogger()
    resolved_level = _resolve_level(level)

    # Drop handlers from earlier calls so repeated runs don't duplicate lines.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        if isinstance(handler, logging.FileHandler):
            handler.close()

    logger.setLevel(resolved_level)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    handlers = []
    if console:
        handlers.append(logging.StreamHandler())
    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    for handler in handlers:
        handler.setLevel(resolved_level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    # Matplotlib's font manager is chatty at DEBUG.
    logging.getLogger("matplotlib").setLevel(max(resolved_level, logging.WARNING))
    return logger
