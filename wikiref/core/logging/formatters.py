"""Console, plain-file and JSON-lines renderings of structured records."""

import json
import logging
from datetime import datetime
from typing import Any

from .constants import LEVEL_LABELS, LOG_TZ, MODULES, PALETTE, colors_enabled, get_request_id

# Keyword fields rendered in a palette color instead of the key color
FIELD_COLORS = {
    "link": "link",
    "url": "link",
    "page_id": "link",
    "entries": "cache",
    "bytes": "cache",
    "kind": "WARNING",
    "delay": "WARNING",
    "error": "ERROR",
}


def module_tag(name: str, width: int = 14) -> str:
    """``refs.cache`` -> ``REF|cache``, bounded to ``width`` characters."""
    prefix, _, rest = name.partition(".")
    tag = MODULES.get(prefix.lower(), (prefix[:3].upper(), ""))[0]
    if rest:
        if len(rest) > 9:
            rest = rest[:8] + "…"
        tag = f"{tag}|{rest}"
    if len(tag) > width:
        tag = tag[: width - 1] + "…"
    return tag


def summarize(value: Any, max_len: int = 60) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, (list, tuple, set)):
        if len(value) > 3:
            return f"[{len(value)} items]"
        return "[" + ", ".join(str(v) for v in value) + "]"
    if isinstance(value, dict):
        return f"{{{len(value)} keys}}" if value else "{}"
    text = str(value)
    return text if len(text) <= max_len else text[: max_len - 3] + "..."


class _RecordFormatter(logging.Formatter):
    """Shared pieces: local timestamp and the keyword fields of a record."""

    def _now(self) -> datetime:
        return datetime.now(LOG_TZ)

    @staticmethod
    def _fields(record: logging.LogRecord) -> dict:
        return getattr(record, "extra_data", None) or {}


class SmartFormatter(_RecordFormatter):
    """Colored single-line console output: ``time level [tag] req message │ k=v``."""

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors and colors_enabled()

    def _c(self, key: str) -> str:
        return PALETTE.get(key, "") if self.use_colors else ""

    def _module_color(self, name: str) -> str:
        if not self.use_colors:
            return ""
        entry = MODULES.get(name.partition(".")[0].lower())
        return entry[1] if entry else PALETTE["module"]

    def format(self, record: logging.LogRecord) -> str:
        reset = self._c("reset")
        now = self._now()
        stamp = f"{now:%H:%M:%S}.{now.microsecond // 1000:03d}"
        label = LEVEL_LABELS.get(record.levelname, record.levelname[:5])
        level_color = self._c(record.levelname)

        head = [
            f"{self._c('time')}{stamp}{reset}",
            f"{level_color}{label}{reset}",
            f"[{self._module_color(record.name)}{module_tag(record.name):14}{reset}]",
        ]
        req = get_request_id()
        if req:
            head.append(f"{self._c('dim')}{req[:8]}{reset}")
        head.append(record.getMessage())
        line = " ".join(head)

        fields = self._fields(record)
        if fields:
            rendered = []
            for key, value in fields.items():
                key_color = self._c(FIELD_COLORS.get(key.lower(), "key"))
                rendered.append(f"{key_color}{key}{reset}={self._c('value')}{summarize(value)}{reset}")
            line += f" {self._c('time')}│{reset} " + " ".join(rendered)

        if record.exc_info:
            line += f"\n{level_color}{self.formatException(record.exc_info)}{reset}"
        return line


class PlainFormatter(_RecordFormatter):
    """Uncolored line format for the rotating log file."""

    def format(self, record: logging.LogRecord) -> str:
        now = self._now()
        stamp = f"{now:%Y-%m-%d %H:%M:%S}.{now.microsecond // 1000:03d}"
        req = get_request_id()
        where = f"{req[:8]}│{module_tag(record.name)}" if req else module_tag(record.name)

        line = f"{stamp} {record.levelname:7} [{where:14}] {record.getMessage()}"
        fields = self._fields(record)
        if fields:
            line += " │ " + " ".join(f"{k}={summarize(v, max_len=200)}" for k, v in fields.items())
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class JsonFormatter(_RecordFormatter):
    """One JSON object per record; keyword fields are merged at the top level."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self._now().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        req = get_request_id()
        if req:
            payload["req"] = req
        payload.update(self._fields(record))
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)
