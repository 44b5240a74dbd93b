"""
Base DAO

Purpose
-------
Shared plumbing for the data-access objects: transaction scoping over the
pooled ``AsyncEngine``, dialect-aware upserts, timing, and translation of
driver failures into the persistence exception hierarchy.

Transaction Model
-----------------
Every DAO call runs inside ``engine.begin()``: commit on success, rollback on
any exception, connection returned to the pool either way. DAOs never hold a
connection between calls.

Error Handling
--------------
SQLAlchemy and socket-level failures are logged once here and re-raised as
``DatabaseError`` (``DataIntegrityError`` for constraint violations) with the
original exception chained. The log level follows the error's severity, so a
duplicate token logs at WARNING and a lost connection at ERROR.
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Sequence

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine
from sqlalchemy.sql import Insert

from iot_persistence.core.exceptions import (
    DataIntegrityError,
    DatabaseError,
    get_error_severity,
)
from iot_persistence.core.logging.logger import get_logger
from iot_persistence.database.metrics import PersistenceMetrics

logger = get_logger(__name__)

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class BaseDao:
    """Common behaviour for DAOs bound to one ``AsyncEngine``."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine
        logger.debug(f"{type(self).__name__} initialized")

    @property
    def dialect_name(self) -> str:
        return self._engine.dialect.name

    # ------------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------------

    @asynccontextmanager
    async def _transaction(
        self, operation: str, **log_extra: Any
    ) -> AsyncIterator[AsyncConnection]:
        """
        Run a block in one transaction, translating and recording failures.

        Parameters
        ----------
        operation : str
            Stable operation name used for logs and metrics.
        **log_extra : Any
            Context merged into the failure log.
        """
        start = time.monotonic()
        try:
            async with self._engine.begin() as conn:
                yield conn

        except (SQLAlchemyError, OSError, asyncio.TimeoutError) as exc:
            duration_ms = (time.monotonic() - start) * 1000
            PersistenceMetrics.record_query(
                operation=operation,
                duration_ms=duration_ms,
                success=False,
                error_type=type(exc).__name__,
            )

            if isinstance(exc, IntegrityError):
                error: DatabaseError = DataIntegrityError(operation, exc)
            else:
                error = DatabaseError(operation, exc)

            logger.log(
                int(get_error_severity(error)),
                f"{operation} failed",
                extra={
                    **log_extra,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                    "error_code": error.error_code,
                    "latency_ms": round(duration_ms, 2),
                },
                exc_info=True,
            )
            raise error from exc

    def _record_success(
        self, operation: str, start: float, rows: Optional[int] = None
    ) -> float:
        duration_ms = (time.monotonic() - start) * 1000
        PersistenceMetrics.record_query(
            operation=operation,
            duration_ms=duration_ms,
            success=True,
            error_type=None,
            rows=rows,
        )
        return round(duration_ms, 2)

    # ------------------------------------------------------------------------
    # Statement Builders
    # ------------------------------------------------------------------------

    def _insert(self, model: Any) -> Insert:
        """Dialect-specific INSERT that supports ``on_conflict_do_*``."""
        factory = _INSERT_BY_DIALECT.get(self.dialect_name)
        if factory is None:
            raise NotImplementedError(
                f"Upserts are not supported on dialect {self.dialect_name!r}"
            )
        return factory(model)

    def _upsert(
        self,
        model: Any,
        key_columns: Sequence[str],
        update_columns: Iterable[str],
    ) -> Insert:
        """INSERT ... ON CONFLICT (key_columns) DO UPDATE SET update_columns."""
        stmt = self._insert(model)
        return stmt.on_conflict_do_update(
            index_elements=list(key_columns),
            set_={column: stmt.excluded[column] for column in update_columns},
        )

    @staticmethod
    def _non_key_columns(rows: List[Dict[str, Any]], key_columns: Sequence[str]) -> List[str]:
        return [column for column in rows[0] if column not in key_columns]
