"""
Structured JSON Logging Module.

Every auth transition is written as one JSON object per line.  Audit
fields passed through ``extra`` (``event``, ``user_id``, ``error_code``)
become top-level keys so the log can be filtered by event or account;
any other extra field lands under ``context``.  Values whose key names a
credential (passwords, secrets, access and refresh tokens) are replaced
with ``[REDACTED]`` before the line is written.

Usage::

    log = get_logger("sessionkeeper.auth")
    log.info("Signed in.", extra={"event": "LOGIN", "user_id": "u1"})
"""

import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, TextIO

AUDIT_FIELDS: tuple[str, ...] = ("event", "user_id", "error_code")
REDACTED = "[REDACTED]"
_SENSITIVE_MARKERS: tuple[str, ...] = ("password", "secret", "token", "api_key")

# LogRecord attributes present on every record; anything else came from ``extra``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    logging.makeLogRecord({}).__dict__
) | {"message", "asctime", "taskName"}


def is_sensitive(key: str) -> bool:
    """``True`` when *key* names a credential that must never be logged."""
    lowered = key.lower()
    return any(marker in lowered for marker in _SENSITIVE_MARKERS)


class JSONFormatter(logging.Formatter):
    """Render a record as ``{"timestamp", "level", "logger", "message", ...}``."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context: dict[str, str] = {}
        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS:
                continue
            text = REDACTED if is_sensitive(key) else str(value)
            if key in AUDIT_FIELDS:
                entry[key] = text
            else:
                context[key] = text
        if context:
            entry["context"] = context

        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            entry["exception"] = record.exc_text

        return json.dumps(entry, ensure_ascii=False)


def _console_handler(stream: Optional[TextIO], formatter: logging.Formatter) -> logging.Handler:
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(formatter)
    return handler


def _file_handler(
    log_file: str, max_bytes: int, backup_count: int, formatter: logging.Formatter,
) -> logging.Handler:
    """Rotating UTF-8 log file; raises ``OSError`` when the path is unusable."""
    path = Path(log_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        filename=str(path),
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setFormatter(formatter)
    return handler


class StructuredLogger:
    """Injectable logger wrapper.

    Pass an instance wherever a logger is needed; services log under a
    :meth:`child` of the application logger so every line carries its
    subsystem name.  File and rotation settings default to
    :class:`~sessionkeeper.config.AppConfig`.
    """

    def __init__(
        self,
        name: str = "sessionkeeper",
        level: Optional[int] = None,
        stream: Optional[TextIO] = None,
        log_file: Optional[str] = None,
        max_bytes: Optional[int] = None,
        backup_count: Optional[int] = None,
    ) -> None:
        # Lazy import: config logs through the standard logging module.
        from sessionkeeper.config import get_config
        cfg = get_config()

        self._logger: logging.Logger = logging.getLogger(name)
        self._logger.setLevel(level if level is not None else cfg.LOG_LEVEL)

        # Reusing a name must not stack duplicate handlers.
        if self._logger.handlers:
            return

        formatter = JSONFormatter()
        self._logger.addHandler(_console_handler(stream, formatter))

        target = log_file or cfg.LOG_FILE
        try:
            self._logger.addHandler(_file_handler(
                target,
                max_bytes if max_bytes is not None else cfg.LOG_MAX_BYTES,
                backup_count if backup_count is not None else cfg.LOG_BACKUP_COUNT,
                formatter,
            ))
        except OSError as exc:
            self._logger.warning(
                "Could not open log file '%s': %s. Logging to console only.",
                target, exc,
            )

    @property
    def logger(self) -> logging.Logger:
        """The underlying ``logging.Logger``."""
        return self._logger

    def debug(self, msg: str, *args: object, **kwargs: object) -> None:
        self._logger.debug(msg, *args, **kwargs)

    def info(self, msg: str, *args: object, **kwargs: object) -> None:
        self._logger.info(msg, *args, **kwargs)

    def warning(self, msg: str, *args: object, **kwargs: object) -> None:
        self._logger.warning(msg, *args, **kwargs)

    def error(self, msg: str, *args: object, **kwargs: object) -> None:
        self._logger.error(msg, *args, **kwargs)

    def critical(self, msg: str, *args: object, **kwargs: object) -> None:
        self._logger.critical(msg, *args, **kwargs)

    def child(self, suffix: str) -> "StructuredLogger":
        """Logger named ``<name>.<suffix>`` sharing this logger's handlers."""
        child = StructuredLogger.__new__(StructuredLogger)
        child._logger = self._logger.getChild(suffix)
        return child


def get_logger(name: str = "sessionkeeper") -> StructuredLogger:
    """Create a ``StructuredLogger`` configured from the application settings."""
    return StructuredLogger(name=name)
