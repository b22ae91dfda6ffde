"""
Logging configuration for activealchemy.

Features:
- Structured JSON logging or colored console output
- Log level driven by settings / ``ACTIVEALCHEMY_LOG_LEVEL``
- Context propagation (model, operation) via ``log_context``

Library code only obtains loggers with ``logging.getLogger(__name__)``;
handlers are installed only when the application calls ``setup_logging``.
"""

import json
import logging
import sys
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator

from activealchemy.config import Settings, get_settings

PACKAGE_LOGGER = "activealchemy"


class StructuredFormatter(logging.Formatter):
    """Formatter that outputs structured JSON logs."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        context = getattr(record, "context", None)
        if context:
            log_data["context"] = context

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


class HumanFormatter(logging.Formatter):
    """Human-readable formatter for console output."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, use_color: bool = True) -> None:
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "") if self.use_color else ""
        reset = self.RESET if self.use_color else ""
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]

        base_msg = f"[{timestamp}] {color}{record.levelname:8}{reset} | {record.name:30} | {record.getMessage()}"

        context = getattr(record, "context", None)
        if context:
            base_msg += f" | context={json.dumps(context, ensure_ascii=False, default=str)}"

        if record.exc_info:
            base_msg += f"\n{self.formatException(record.exc_info)}"

        return base_msg


class LogContext:
    """Context manager for adding context to logs."""

    _current_context: dict[str, Any] = {}

    def __init__(self, **kwargs: Any):
        self._new_context = kwargs
        self._old_context: dict[str, Any] = {}

    def __enter__(self) -> "LogContext":
        self._old_context = LogContext._current_context.copy()
        LogContext._current_context = {**self._old_context, **self._new_context}
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        LogContext._current_context = self._old_context

    @classmethod
    def get_context(cls) -> dict[str, Any]:
        return cls._current_context.copy()


class ContextFilter(logging.Filter):
    """Filter that copies the active ``LogContext`` onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = LogContext.get_context()
        if context:
            record.context = {**context, **getattr(record, "context", {})}
        return True


@contextmanager
def log_context(**kwargs: Any) -> Iterator[None]:
    """
    Context manager for adding context to logs.

    Usage:
        with log_context(model="User", operation="save"):
            logger.debug("Saving")
    """
    with LogContext(**kwargs):
        yield


def setup_logging(
    settings: Settings | None = None,
    level: str | None = None,
    stream: Any = None,
) -> logging.Logger:
    """
    Install a handler on the package logger.

    Args:
        settings: Settings to read level and format from (defaults to global)
        level: Explicit level overriding the settings
        stream: Output stream (defaults to stdout)

    Returns:
        The configured package logger
    """
    settings = settings or get_settings()
    level_name = (level or settings.log_level).upper()

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(getattr(logging, level_name, logging.INFO))

    for handler in package_logger.handlers[:]:
        package_logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stdout)
    if settings.log_format == "json":
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(HumanFormatter(use_color=stream is None))
    handler.addFilter(ContextFilter())
    package_logger.addHandler(handler)

    return package_logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
