"""Keyword-field logger used throughout wikiref.

    _log = get_logger("refs.cache")
    _log.info("Entry stored", link=link, bytes=size)

Keyword arguments travel on the record as ``extra_data`` and are rendered
by the formatters in ``formatters.py``.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

from .constants import (
    DEFAULT_LEVEL,
    LOG_DIR,
    LOG_FILE_BACKUPS,
    LOG_FILE_MAX_BYTES,
    LOG_JSON,
    LOG_LEVEL_MAP,
)
from .formatters import JsonFormatter, PlainFormatter, SmartFormatter

logging.getLogger().addHandler(logging.NullHandler())


def _file_handlers() -> list[logging.Handler]:
    if not LOG_DIR:
        return []
    handlers: list[logging.Handler] = []
    try:
        log_dir = Path(LOG_DIR)
        log_dir.mkdir(parents=True, exist_ok=True)
        text = RotatingFileHandler(
            log_dir / "wikiref.log",
            maxBytes=LOG_FILE_MAX_BYTES,
            backupCount=LOG_FILE_BACKUPS,
            encoding="utf-8",
        )
        text.setFormatter(PlainFormatter())
        text.setLevel(logging.DEBUG)
        handlers.append(text)
        if LOG_JSON:
            jsonl = logging.FileHandler(log_dir / "wikiref.jsonl", encoding="utf-8")
            jsonl.setFormatter(JsonFormatter())
            jsonl.setLevel(logging.INFO)
            handlers.append(jsonl)
    except OSError as e:
        sys.stderr.write(f"wikiref: file logging disabled ({e})\n")
    return handlers


class StructuredLogger:
    """Thin wrapper over a stdlib logger that accepts keyword fields."""

    def __init__(self, name: str, level: Optional[int] = None):
        self._logger = logging.getLogger(name)
        level = level or DEFAULT_LEVEL
        self._logger.setLevel(level)
        self._logger.propagate = False

        if not self._logger.handlers:
            # stdout carries CLI output
            console = logging.StreamHandler(sys.stderr)
            console.setFormatter(SmartFormatter())
            console.setLevel(level)
            self._logger.addHandler(console)
            for handler in _file_handlers():
                self._logger.addHandler(handler)

    def _log(self, level: int, msg: str, exc_info=None, **fields: Any) -> None:
        if not self._logger.isEnabledFor(level):
            return
        record = self._logger.makeRecord(self._logger.name, level, "", 0, msg, (), exc_info)
        record.extra_data = fields
        self._logger.handle(record)

    def debug(self, msg: str, **fields: Any) -> None:
        self._log(logging.DEBUG, msg, **fields)

    def info(self, msg: str, **fields: Any) -> None:
        self._log(logging.INFO, msg, **fields)

    def warning(self, msg: str, **fields: Any) -> None:
        self._log(logging.WARNING, msg, **fields)

    def error(self, msg: str, **fields: Any) -> None:
        self._log(logging.ERROR, msg, **fields)

    def exception(self, msg: str, **fields: Any) -> None:
        """Log at ERROR with the exception currently being handled."""
        self._log(logging.ERROR, msg, exc_info=sys.exc_info(), **fields)


_registry: dict[str, StructuredLogger] = {}


def get_logger(name: str = "wikiref") -> StructuredLogger:
    logger = _registry.get(name)
    if logger is None:
        logger = _registry[name] = StructuredLogger(name)
    return logger


def set_log_level(level: str) -> None:
    """Apply ``level`` to every logger created so far and to their consoles."""
    numeric = LOG_LEVEL_MAP.get(level.upper(), logging.INFO)
    for logger in _registry.values():
        logger._logger.setLevel(numeric)
        for handler in logger._logger.handlers:
            if type(handler) is logging.StreamHandler:
                handler.setLevel(numeric)
