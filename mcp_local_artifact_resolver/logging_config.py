"""Centralized logging configuration.

Guarantees:
- All logs go to stderr; stdout belongs to the MCP stdio transport
- Idempotent configuration (no duplicate handlers)
- Human-readable lines by default; one JSON object per line when requested
- MCP transport loggers stay at WARNING unless DEBUG is requested
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

_STDERR_HANDLER_NAME = "resolver_stderr_handler"
_TRANSPORT_LOGGERS = ("mcp", "fastmcp")

# Attributes every LogRecord carries; anything else arrived via ``extra=``
_RECORD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}


class _JsonFormatter(logging.Formatter):
    """One-line JSON: timestamp, level, logger, message, plus any extras
    such as ``op`` or ``source``."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name or "root",
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS or key.startswith("_"):
                continue
            try:
                json.dumps(value)
            except (TypeError, ValueError):
                value = str(value)
            payload[key] = value

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def _build_formatter(json_logs: bool) -> logging.Formatter:
    if json_logs:
        return _JsonFormatter()
    return logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )


def _stderr_handler(root: logging.Logger) -> logging.Handler:
    for h in root.handlers:
        if h.name == _STDERR_HANDLER_NAME:
            return h
    handler = logging.StreamHandler(stream=sys.stderr)
    handler.name = _STDERR_HANDLER_NAME
    root.handlers = [h for h in root.handlers if not _writes_to_stdout(h)]
    root.addHandler(handler)
    return handler


def _writes_to_stdout(h: logging.Handler) -> bool:
    return isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stdout


def configure_logging(log_level: str = "INFO", json_logs: bool = False) -> None:
    """Configure application-wide logging.

    Parameters
    ----------
    log_level: str
        Root log level name; unknown names fall back to INFO.
    json_logs: bool
        If True, emit one-line JSON per record.
    """
    level = logging.getLevelName((log_level or "").upper())
    if not isinstance(level, int):
        level = logging.INFO

    root = logging.getLogger()
    _stderr_handler(root).setFormatter(_build_formatter(json_logs))
    root.setLevel(level)

    transport_level = logging.DEBUG if level <= logging.DEBUG else logging.WARNING
    for name in _TRANSPORT_LOGGERS:
        logging.getLogger(name).setLevel(transport_level)


__all__ = ["configure_logging"]
