"""
Exception hierarchy for activealchemy.

Two kinds of failure exist:
- Configuration errors: programmer mistakes detected at class-definition
  or call time. They always propagate.
- Save failures: a record that is invalid or whose callback chain halted.
  ``save``/``destroy`` raise these only when ``raise_on_save_failure`` is on.

Validation failures themselves are never raised; they are collected in the
record's ``errors``.
"""

from datetime import datetime
from typing import Any


class ActiveAlchemyError(Exception):
    """Base exception for activealchemy errors."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.timestamp = datetime.now()

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


class ConfigurationError(ActiveAlchemyError):
    """Invalid model, callback or validator configuration."""

    def __init__(
        self,
        message: str,
        option: str | None = None,
        **kwargs: Any,
    ) -> None:
        details = kwargs.pop("details", {}) or {}
        if option:
            details["option"] = option
        super().__init__(message, details=details)


class ValidationFailed(ActiveAlchemyError):
    """Raised by ``save`` when the record is invalid."""

    def __init__(self, record: Any) -> None:
        self.record = record
        self.errors = record.errors
        messages = self.errors.full_messages()
        message = "; ".join(messages) if messages else "validation failed"
        super().__init__(
            message,
            details={"model": type(record).__name__, "errors": self.errors.to_dict()},
        )


class HookFailed(ActiveAlchemyError):
    """Raised when a callback chain halts a save or destroy."""

    def __init__(self, message: str, record: Any = None) -> None:
        self.record = record
        details = {"model": type(record).__name__} if record is not None else {}
        super().__init__(message, details=details)
