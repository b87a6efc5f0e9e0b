"""Logging settings, palette and the per-call request context."""

import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional, TextIO
from zoneinfo import ZoneInfo

LOG_TZ = ZoneInfo(os.getenv("WIKIREF_LOG_TZ", "UTC"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_LEVEL_MAP = {
    name: level
    for name, level in logging.getLevelNamesMapping().items()
    if level > logging.NOTSET
}
DEFAULT_LEVEL = LOG_LEVEL_MAP.get(LOG_LEVEL, logging.INFO)
LOG_JSON = os.getenv("WIKIREF_LOG_JSON", "").lower() in ("1", "true", "yes")
# File logging is off unless a directory is given
LOG_DIR = os.getenv("WIKIREF_LOG_DIR", "")
LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUPS = 3

_request_id: ContextVar[Optional[str]] = ContextVar("wikiref_request_id", default=None)


def set_request_id(request_id: str):
    return _request_id.set(request_id)


def reset_request_id(token) -> None:
    _request_id.reset(token)


def get_request_id() -> Optional[str]:
    return _request_id.get()


@contextmanager
def request_scope(request_id: str) -> Iterator[str]:
    """Tag every record emitted inside the block with ``request_id``."""
    token = _request_id.set(request_id)
    try:
        yield request_id
    finally:
        _request_id.reset(token)


# logger prefix -> (tag, color)
MODULES = {
    "core": ("COR", "\033[96m"),
    "refs": ("REF", "\033[95m"),
    "confluence": ("CNF", "\033[93m"),
    "cli": ("CLI", "\033[97m"),
}

PALETTE = {
    "reset": "\033[0m",
    "dim": "\033[2m",
    "time": "\033[90m",
    "module": "\033[34m",
    "key": "\033[90m",
    "value": "\033[37m",
    "link": "\033[95m",
    "cache": "\033[96m",
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[35m",
}

LEVEL_LABELS = {
    "DEBUG": "DEBUG",
    "INFO": " INFO",
    "WARNING": " WARN",
    "ERROR": "ERROR",
    "CRITICAL": "CRIT!",
}


def colors_enabled(stream: Optional[TextIO] = None) -> bool:
    """NO_COLOR wins, FORCE_COLOR forces, otherwise only on a terminal."""
    if os.getenv("NO_COLOR"):
        return False
    if os.getenv("FORCE_COLOR"):
        return True
    stream = stream or sys.stderr
    return hasattr(stream, "isatty") and stream.isatty()
