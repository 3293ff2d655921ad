"""Structured logging setup shared by the engine and the dev CLIs."""

from __future__ import annotations

import json
import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict

_PROJECT_ROOT = Path(__file__).resolve().parents[2]
_LOG_ROOT = Path(os.getenv("ALBUM_ENGINE_LOG_DIR", str(_PROJECT_ROOT / "log")))
_LOG_FILE_NAME = "album_engine.log"
_STANDARD_KEYS = frozenset(logging.makeLogRecord({}).__dict__.keys()) | {"stack_info", "asctime", "message"}


def _record_extras(record: logging.LogRecord) -> Dict[str, Any]:
    """Return the fields attached to a record via ``extra=``."""

    return {key: value for key, value in record.__dict__.items() if key not in _STANDARD_KEYS}


class _JsonLineFormatter(logging.Formatter):
    """Render each record as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        payload.update(_record_extras(record))

        try:
            return json.dumps(payload, ensure_ascii=False, sort_keys=True)
        except TypeError:
            safe_payload = {
                key: value if isinstance(value, (str, int, float, bool, type(None))) else str(value)
                for key, value in payload.items()
            }
            return json.dumps(safe_payload, ensure_ascii=False, sort_keys=True)


class _KeyValueFormatter(logging.Formatter):
    """Console formatter appending ``extra`` fields as ``key=value`` pairs."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        extras = _record_extras(record)
        if not extras:
            return base
        rendered = " ".join(f"{key}={value!r}" for key, value in sorted(extras.items()))
        return f"{base} | {rendered}"


def _resolve_level() -> int:
    raw = os.getenv("ALBUM_ENGINE_LOG_LEVEL", "INFO").upper()
    level = logging.getLevelName(raw)
    return level if isinstance(level, int) else logging.INFO


def _configure_root_logger() -> None:
    """Attach console and rotating file handlers once per process."""

    root = logging.getLogger()
    if root.handlers:
        return

    root.setLevel(_resolve_level())

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(_KeyValueFormatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    root.addHandler(console_handler)

    try:
        _LOG_ROOT.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            _LOG_ROOT / _LOG_FILE_NAME,
            maxBytes=5 * 1024 * 1024,
            backupCount=3,
            encoding="utf-8",
        )
    except OSError as exc:
        root.warning("log_file_handler_unavailable", extra={"log_root": str(_LOG_ROOT), "error": str(exc)})
        return

    file_handler.setFormatter(_JsonLineFormatter())
    root.addHandler(file_handler)


class _ContextAdapter(logging.LoggerAdapter):
    """Adapter that merges per-call ``extra`` over the bound context."""

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        kwargs["extra"] = {**(self.extra or {}), **(kwargs.get("extra") or {})}
        return msg, kwargs


def get_logger(name: str, extra: Dict[str, Any] | None = None) -> logging.LoggerAdapter:
    """Return a logger adapter that stamps ``extra`` onto every record.

    The first call configures the root logger. Log calls pass a snake_case
    event name as the message and put context in ``extra``.
    """

    _configure_root_logger()
    return _ContextAdapter(logging.getLogger(name), extra or {})


__all__ = ["get_logger"]
