"""Structured logging for BookSwap.

Every module obtains its logger through ``get_logger(__name__)`` and passes
structured data as ``extra={"context": {...}}``. ``setup_logging`` wires the
root logger with:

- a rotating JSON-lines file handler (10MB, 5 backups)
- a console handler (plain text in DEBUG, JSON otherwise)
- ``SensitiveDataFilter`` on both, so credentials never reach a handler
"""

from __future__ import annotations

import json
import logging
import re
import sys
from contextvars import ContextVar, Token
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, ClassVar

from bookswap.core.config import settings

REDACTED = "[REDACTED]"

_scoped_context: ContextVar[dict[str, Any] | None] = ContextVar(
    "bookswap_log_context", default=None
)


class ContextFilter(logging.Filter):
    """Merge the ``LogContext`` scope into ``record.context``."""

    def filter(self, record: logging.LogRecord) -> bool:
        scoped = _scoped_context.get()
        if scoped:
            record.context = {**scoped, **(getattr(record, "context", None) or {})}
        return True


class SensitiveDataFilter(logging.Filter):
    """Redact credentials from log messages and structured context.

    Free text such as ``"password: hunter2"`` has its value replaced, and any
    key of the ``context`` dict that names a secret has its value replaced.

    Examples:
        >>> logger = logging.getLogger("bookswap")
        >>> logger.addFilter(SensitiveDataFilter())
        >>> logger.info("password=hunter2")
        # Logs: "password: [REDACTED]"
    """

    SENSITIVE_PATTERNS: ClassVar[list[str]] = [
        "password",
        "passwd",
        "pwd",
        "secret",
        "token",
        "credential",
    ]

    # Context keys that describe a secret without holding it
    SAFE_CONTEXT_KEYS: ClassVar[frozenset[str]] = frozenset(
        {"password_length", "password_version", "password_changed"}
    )

    _TEXT_PATTERNS: ClassVar[list[re.Pattern[str]]] = [
        re.compile(rf"({p})[:=]\s*[\"']?[^\s\"',]+", re.IGNORECASE)
        for p in SENSITIVE_PATTERNS
    ]

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = self.redact_text(str(record.msg))

        if record.args:
            record.args = tuple(
                self.redact_text(arg) if isinstance(arg, str) else arg
                for arg in record.args
            )

        context = getattr(record, "context", None)
        if isinstance(context, dict):
            record.context = self.redact_context(context)

        return True

    def redact_text(self, text: str) -> str:
        """Replace the value following any sensitive keyword in ``text``."""
        for regex in self._TEXT_PATTERNS:
            text = regex.sub(rf"\1: {REDACTED}", text)
        return text

    def redact_context(self, context: dict[str, Any]) -> dict[str, Any]:
        """Return a copy of ``context`` with secret-bearing values replaced."""
        cleaned: dict[str, Any] = {}
        for key, value in context.items():
            lowered = key.lower()
            if lowered not in self.SAFE_CONTEXT_KEYS and any(
                p in lowered for p in self.SENSITIVE_PATTERNS
            ):
                cleaned[key] = REDACTED
            elif isinstance(value, dict):
                cleaned[key] = self.redact_context(value)
            else:
                cleaned[key] = value
        return cleaned


class JSONFormatter(logging.Formatter):
    """Render records as one JSON object per line.

    Format:
        {
            "timestamp": "2026-01-12T10:30:45.123456Z",
            "level": "INFO",
            "logger": "bookswap.services.user_service",
            "message": "User created",
            "service": "BookSwap",
            "context": {"user_id": "...", "action": "create_user"}
        }
    """

    def __init__(self, service_name: str = "BookSwap") -> None:
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC)
            .isoformat()
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
        }

        if hasattr(record, "context"):
            log_entry["context"] = record.context

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info),
            }

        if record.levelno >= logging.ERROR:
            log_entry["source"] = {
                "function": record.funcName,
                "line": record.lineno,
                "file": record.pathname,
            }

        return json.dumps(log_entry, default=str, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """Human-readable formatter that appends the structured context."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = getattr(record, "context", None)
        if context:
            line = f"{line} | Context: {json.dumps(context, default=str)}"
        return line


def setup_logging(
    log_level: str | None = None,
    log_file: str | None = None,
    service_name: str | None = None,
    enable_json: bool | None = None,
    enable_console: bool = True,
) -> logging.Logger:
    """Configure the root logger with filtered file and console handlers.

    Args:
        log_level: Logging level name. Defaults to ``settings.LOG_LEVEL``.
        log_file: Path of the rotating log file. Defaults to
            ``settings.LOG_FILE`` or ``logs/bookswap.log``.
        service_name: Service name stamped on JSON records.
        enable_json: JSON lines in the file handler. Defaults to
            ``settings.LOG_JSON_FORMAT``.
        enable_console: Also log to stdout.

    Returns:
        The configured root logger.
    """
    level_name = (log_level or settings.LOG_LEVEL).upper()
    level = getattr(logging, level_name, logging.INFO)
    service_name = service_name or settings.PROJECT_NAME
    if enable_json is None:
        enable_json = settings.LOG_JSON_FORMAT

    log_file_path = Path(log_file or settings.LOG_FILE or "logs/bookswap.log")
    log_file_path.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger()
    logger.setLevel(level)
    logger.handlers.clear()

    context_filter = ContextFilter()
    sensitive_filter = SensitiveDataFilter()

    file_handler = RotatingFileHandler(
        filename=str(log_file_path),
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(
        JSONFormatter(service_name=service_name) if enable_json else ConsoleFormatter()
    )
    file_handler.addFilter(context_filter)
    file_handler.addFilter(sensitive_filter)
    logger.addHandler(file_handler)

    if enable_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        if settings.DEBUG:
            console_handler.setFormatter(ConsoleFormatter())
        else:
            console_handler.setFormatter(JSONFormatter(service_name=service_name))
        console_handler.addFilter(context_filter)
        console_handler.addFilter(sensitive_filter)
        logger.addHandler(console_handler)

    logger.info(
        "Logging initialized",
        extra={
            "context": {
                "log_level": level_name,
                "log_file": str(log_file_path),
                "service": service_name,
            }
        },
    )

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger that inherits the ``setup_logging`` configuration."""
    return logging.getLogger(name)


class LogContext:
    """Attach context to every record logged inside a ``with`` block.

    The scope lives in a ``ContextVar``, so concurrent tasks never see each
    other's context. ``ContextFilter`` merges it into ``record.context``;
    keys passed explicitly through ``extra={"context": ...}`` win.

    Examples:
        >>> with LogContext(trade_key="1f0e..."):
        ...     logger.info("Trade accepted")
    """

    def __init__(self, **context: Any) -> None:
        self.context = context
        self._token: Token[dict[str, Any] | None] | None = None

    def __enter__(self) -> LogContext:
        current = _scoped_context.get() or {}
        self._token = _scoped_context.set({**current, **self.context})
        return self

    def __exit__(self, *args: Any) -> None:
        if self._token is not None:
            _scoped_context.reset(self._token)
            self._token = None


def current_log_context() -> dict[str, Any]:
    """Return a copy of the context active in the current task."""
    return dict(_scoped_context.get() or {})


__all__ = [
    "ConsoleFormatter",
    "ContextFilter",
    "JSONFormatter",
    "LogContext",
    "SensitiveDataFilter",
    "current_log_context",
    "get_logger",
    "setup_logging",
]
