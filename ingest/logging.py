"""Logging setup shared by every ingestion entry point."""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

_NOISY = ("httpx", "httpcore", "pymongo")


def configure_logging(level: str | int = logging.INFO) -> None:
    """Send all records to stdout in a single line format."""
    if isinstance(level, str):
        level = logging.getLevelName(level.strip().upper())
        if not isinstance(level, int):
            level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in _NOISY:
        logging.getLogger(name).setLevel(logging.WARNING)
