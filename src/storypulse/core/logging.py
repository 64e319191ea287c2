# src/storypulse/core/logging.py
"""Logging setup for the StoryPulse server and client."""

import json
import logging
import sys
from typing import Any

from storypulse.config import config

LOG_FORMATS = ("plain", "rich", "json")
NOISY_LOGGERS = ("uvicorn", "asyncio", "httpx", "httpcore")

_configured = False

# Attributes every LogRecord carries; anything else arrived through ``extra=``.
_STANDARD_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__
) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """One JSON object per line; ``extra=`` fields are carried through."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S%z"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        extras = {k: v for k, v in record.__dict__.items() if k not in _STANDARD_ATTRS}
        if extras:
            entry.update(json.loads(json.dumps(extras, default=str)))
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def _build_handler(fmt: str, level: int) -> logging.Handler:
    handler: logging.Handler
    if fmt == "rich":
        from rich.logging import RichHandler

        # RichHandler renders time and level columns itself
        handler = RichHandler(show_path=False, markup=False)
        handler.setFormatter(logging.Formatter("%(message)s"))
    elif fmt == "json":
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JsonFormatter())
    else:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)-7s %(name)s: %(message)s", "%H:%M:%S")
        )
    handler.setLevel(level)
    return handler


def init_logging(level: str | None = None, format: str | None = None) -> None:
    """
    Configure the root logger once per process.

    Defaults come from ``STORYPULSE_LOG_LEVEL`` (INFO) and
    ``STORYPULSE_LOG_FORMAT`` (plain, rich or json; rich when unset).
    """
    global _configured
    if _configured:
        return

    level_name = (level or config.system.log_level or "INFO").upper()
    numeric = logging.getLevelName(level_name)
    if not isinstance(numeric, int):
        numeric = logging.INFO
    fmt = (format or config.system.log_format or "rich").lower()
    if fmt not in LOG_FORMATS:
        fmt = "rich"

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(numeric)
    root.addHandler(_build_handler(fmt, numeric))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric, logging.WARNING))

    from storypulse import __version__

    get_logger("storypulse.start").info(
        "StoryPulse %s logging | level=%s format=%s", __version__, level_name, fmt
    )
    _configured = True


def get_logger(name: str | None = None) -> logging.Logger:
    """
    Get a logger with the provided name, or the package logger if None.
    """
    return logging.getLogger(name or "storypulse")
