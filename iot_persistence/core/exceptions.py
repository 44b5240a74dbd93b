"""
Persistence exception hierarchy.

Every exception carries a stable ``error_code``, structured ``details``, a
``severity`` (which doubles as the level it is logged at) and an
``is_retryable`` hint. Nothing in this package retries on its own.
"""

from __future__ import annotations

import logging
from enum import IntEnum
from typing import Any, Dict, Optional


class ErrorSeverity(IntEnum):
    WARNING = logging.WARNING
    ERROR = logging.ERROR


class PersistenceException(Exception):
    """Base class for persistence-layer errors."""

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE: bool = False
    ERROR_CODE: str = "PERSISTENCE_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message
        self.details: Dict[str, Any] = details or {}
        self.severity: ErrorSeverity = self.DEFAULT_SEVERITY
        self.is_retryable: bool = self.DEFAULT_RETRYABLE
        self.error_code: str = self.ERROR_CODE
        super().__init__(message)

    def __str__(self) -> str:
        details = f" | Details: {self.details}" if self.details else ""
        return f"[{self.error_code}] {self.message}{details}"


class DatabaseError(PersistenceException):
    """
    A data-access operation failed: query error, lost connection, or no
    pooled connection within the timeout.

    The driver/SQLAlchemy exception is kept on ``original_error`` and chained
    as ``__cause__``.
    """

    DEFAULT_RETRYABLE = True
    ERROR_CODE = "DATABASE_ERROR"

    def __init__(self, operation: str, original_error: BaseException) -> None:
        self.operation = operation
        self.original_error = original_error
        super().__init__(
            f"Database error during {operation}: {original_error}",
            details={
                "operation": operation,
                "error_type": type(original_error).__name__,
            },
        )


class DataIntegrityError(DatabaseError):
    """A write violated a store constraint, e.g. a duplicate redeem token."""

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = False
    ERROR_CODE = "DATA_INTEGRITY_ERROR"


class PersistenceDisabledError(PersistenceException):
    """An operation that must not silently no-op was called while storage is off."""

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    ERROR_CODE = "PERSISTENCE_DISABLED"

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(
            f"Persistence is disabled; cannot perform {operation}",
            details={"operation": operation},
        )


class PersistenceClosedError(PersistenceException):
    """A request/response operation was issued after close()."""

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    ERROR_CODE = "PERSISTENCE_CLOSED"

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(
            f"Persistence has been closed; cannot perform {operation}",
            details={"operation": operation},
        )


def is_transient_error(exc: BaseException) -> bool:
    return isinstance(exc, PersistenceException) and exc.is_retryable


def get_error_severity(exc: BaseException) -> ErrorSeverity:
    if isinstance(exc, PersistenceException):
        return exc.severity
    return ErrorSeverity.ERROR
