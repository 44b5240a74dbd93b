"""
Persistence Metrics - Observability Facade

Purpose
-------
Backend-agnostic telemetry for the persistence layer: pool lifecycle, health
checks, DAO queries, background job outcomes and pool utilization.

Infrastructure code calls the ``PersistenceMetrics`` classmethods. A host can
plug in a backend (statsd, Prometheus, ...) with ``configure_backend()``;
without one, events are written as DEBUG logs.

Usage Example
-------------
>>> PersistenceMetrics.configure_backend(MyStatsdBackend())
>>> PersistenceMetrics.record_query(
...     operation="RedeemDao.select_by_token",
...     duration_ms=1.7,
...     success=True,
...     error_type=None,
... )
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional

from iot_persistence.core.logging.logger import get_logger

logger = get_logger(__name__)


class AbstractPersistenceMetricsBackend(ABC):
    """Interface implemented by pluggable metrics backends."""

    @abstractmethod
    def record_pool_opened(
        self, *, url_scheme: str, pool_size: int, connection_timeout_ms: int
    ) -> None:
        """A pool was opened and passed its ``SELECT 1`` probe."""

    @abstractmethod
    def record_pool_open_failed(self, *, error_type: str) -> None: ...

    @abstractmethod
    def record_pool_closed(self) -> None: ...

    @abstractmethod
    def record_health_check(self, *, success: bool, duration_ms: float) -> None: ...

    @abstractmethod
    def record_query(
        self,
        *,
        operation: str,
        duration_ms: float,
        success: bool,
        error_type: Optional[str],
        rows: Optional[int] = None,
    ) -> None:
        """
        A DAO call finished.

        ``operation`` is a stable "Dao.method" name; ``rows`` is set when the
        row count is known.
        """

    @abstractmethod
    def record_background_job(self, *, name: str, outcome: str, duration_ms: float) -> None:
        """``outcome`` is one of "succeeded", "failed" or "dropped"."""

    @abstractmethod
    def record_pool_metrics(
        self, *, pool_size: int, checked_out: int, checked_in: int, overflow: int
    ) -> None: ...


class PersistenceMetrics:
    """Static facade over the configured backend."""

    _backend: Optional[AbstractPersistenceMetricsBackend] = None

    @classmethod
    def configure_backend(cls, backend: Optional[AbstractPersistenceMetricsBackend]) -> None:
        """Install ``backend``; ``None`` restores the log fallback."""
        cls._backend = backend
        logger.info(
            "Persistence metrics backend configured",
            extra={"backend_class": type(backend).__name__ if backend else None},
        )

    @classmethod
    def _emit(cls, event: str, **fields: Any) -> None:
        if cls._backend is not None:
            getattr(cls._backend, f"record_{event}")(**fields)
            return
        # "name"/"operation" clash with LogRecord and log context attributes
        extra = {
            {"name": "job_name", "operation": "db_operation"}.get(key, key): value
            for key, value in fields.items()
        }
        logger.debug(f"[PersistenceMetrics fallback] {event}", extra=extra or None)

    @classmethod
    def record_pool_opened(
        cls, *, url_scheme: str, pool_size: int, connection_timeout_ms: int
    ) -> None:
        cls._emit(
            "pool_opened",
            url_scheme=url_scheme,
            pool_size=pool_size,
            connection_timeout_ms=connection_timeout_ms,
        )

    @classmethod
    def record_pool_open_failed(cls, *, error_type: str) -> None:
        cls._emit("pool_open_failed", error_type=error_type)

    @classmethod
    def record_pool_closed(cls) -> None:
        cls._emit("pool_closed")

    @classmethod
    def record_health_check(cls, *, success: bool, duration_ms: float) -> None:
        cls._emit("health_check", success=success, duration_ms=duration_ms)

    @classmethod
    def record_query(
        cls,
        *,
        operation: str,
        duration_ms: float,
        success: bool,
        error_type: Optional[str],
        rows: Optional[int] = None,
    ) -> None:
        cls._emit(
            "query",
            operation=operation,
            duration_ms=duration_ms,
            success=success,
            error_type=error_type,
            rows=rows,
        )

    @classmethod
    def record_background_job(
        cls, *, name: str, outcome: str, duration_ms: float = 0.0
    ) -> None:
        cls._emit("background_job", name=name, outcome=outcome, duration_ms=duration_ms)

    @classmethod
    def record_pool_metrics(
        cls, *, pool_size: int, checked_out: int, checked_in: int, overflow: int
    ) -> None:
        cls._emit(
            "pool_metrics",
            pool_size=pool_size,
            checked_out=checked_out,
            checked_in=checked_in,
            overflow=overflow,
        )
