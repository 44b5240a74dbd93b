"""
Persistence Manager - Asynchronous Persistence Façade

Purpose
-------
Single entry point the IoT server uses to reach its separate relational
store. The manager decides once, at initialization, whether persistence is
enabled; when it is not, every operation degrades to a harmless no-op (or an
absent result) so the rest of the server keeps running without a database.

Responsibilities
----------------
- Load the properties source and open the connection pool at most once
- Hold an explicit enabled/disabled state and check it before every call
- Hand fire-and-forget bulk writes to the BackgroundExecutor
- Run request/response calls inline, propagating data-access failures
- Release the pool exactly once on close()

Non-Responsibilities
--------------------
- SQL (delegated to the DAOs)
- Reconnecting: a disabled manager stays disabled for its lifetime
- Tracking or retrying background jobs

Operation Kinds
---------------
**Fire-and-forget** (plain methods, return ``None`` immediately):
- save_users()
- insert_reporting()
- clean_old_reporting_records()

**Request/response** (coroutines, failures raise ``DatabaseError``):
- select_redeem_by_token()
- update_redeem()
- insert_redeems()
- execute_sql()
- get_connection()

Disabled Mode
-------------
Triggered by a missing or empty properties source, unusable pool settings,
or a pool that fails its first probe. Disabled calls return ``None``/no-op,
except update_redeem(), which raises PersistenceDisabledError.

Usage Example
-------------
>>> executor = BackgroundExecutor.from_config()
>>> await executor.start()
>>> async with await PersistenceManager.create(executor) as manager:
...     manager.save_users(users)
...     redeem = await manager.select_redeem_by_token(token)
...     if redeem and not redeem.is_redeemed:
...         won = await manager.update_redeem(username, token)
"""

from __future__ import annotations

import asyncio
import functools
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    Mapping,
    Optional,
    Union,
)

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from iot_persistence.core.config.config import Config
from iot_persistence.core.config.properties import DatabaseProperties
from iot_persistence.core.exceptions import (
    DatabaseError,
    PersistenceClosedError,
    PersistenceDisabledError,
)
from iot_persistence.core.logging.logger import LogContext, get_logger
from iot_persistence.database.dao import (
    RedeemDao,
    ReportingDao,
    StatementDao,
    UserDao,
)
from iot_persistence.database.metrics import PersistenceMetrics
from iot_persistence.database.pool import (
    PoolSettings,
    close_pool,
    open_pool,
)
from iot_persistence.domain.models.redeem import Redeem
from iot_persistence.domain.models.reporting import (
    AggregationKey,
    AggregationValue,
    GraphType,
)
from iot_persistence.domain.models.user import User

if TYPE_CHECKING:
    from iot_persistence.core.background.executor import BackgroundExecutor

logger = get_logger(__name__)


# ============================================================================
# State
# ============================================================================


@dataclass(frozen=True)
class _Disabled:
    reason: str


@dataclass(frozen=True)
class _Enabled:
    engine: AsyncEngine
    settings: PoolSettings
    users: UserDao
    reporting: ReportingDao
    redeems: RedeemDao
    statements: StatementDao


_State = Union[_Disabled, _Enabled]


# ============================================================================
# PersistenceManager
# ============================================================================


class PersistenceManager:
    """
    Async persistence façade with graceful degradation.

    Thread Safety
    -------------
    Meant to be shared by every coroutine of the server. Only initialize()
    and close() take a lock; all other calls read the immutable state.
    """

    def __init__(
        self,
        executor: BackgroundExecutor,
        properties_file: Optional[Union[str, Path]] = None,
    ) -> None:
        self._executor = executor
        self._properties_file = str(properties_file or Config.DB_PROPERTIES_FILE)
        self._state: _State = _Disabled(reason="not initialized")
        self._initialized: bool = False
        self._closed: bool = False
        self._lock = asyncio.Lock()

    @classmethod
    async def create(
        cls,
        executor: BackgroundExecutor,
        properties_file: Optional[Union[str, Path]] = None,
    ) -> PersistenceManager:
        """Construct and initialize a manager in one step."""
        manager = cls(executor, properties_file)
        await manager.initialize()
        return manager

    # ========================================================================
    # Initialization & Shutdown
    # ========================================================================

    async def initialize(self) -> None:
        """
        Decide the enabled/disabled state. Idempotent; never raises for a
        missing source or an unreachable store.
        """
        async with self._lock:
            if self._initialized:
                logger.debug("PersistenceManager already initialized; skipping")
                return
            self._initialized = True
            self._state = await self._build_state()

    async def _build_state(self) -> _State:
        properties = DatabaseProperties.load(self._properties_file)
        if properties.is_empty:
            logger.warning(
                f"No {self._properties_file} file found. Separate DB storage disabled."
            )
            return _Disabled(reason="no properties")

        try:
            settings = PoolSettings.from_properties(properties)
            engine = await open_pool(settings)
        except Exception as exc:
            # Any failure leaves storage disabled.
            logger.error(
                "Error initializing separate DB storage. Separate DB storage disabled.",
                extra={
                    "source": properties.source,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
                exc_info=True,
            )
            return _Disabled(reason=str(exc))

        logger.info(
            "Separate DB storage enabled",
            extra={"source": properties.source, "url": settings.safe_url},
        )
        return _Enabled(
            engine=engine,
            settings=settings,
            users=UserDao(engine),
            reporting=ReportingDao(engine),
            redeems=RedeemDao(engine),
            statements=StatementDao(engine),
        )

    async def close(self) -> None:
        """Release the pool. Safe to call repeatedly; no-op when disabled."""
        async with self._lock:
            if self._closed:
                return
            self._closed = True

            state = self._state
            if not isinstance(state, _Enabled):
                logger.debug("PersistenceManager closed (storage was disabled)")
                return

            logger.info("Closing separate DB storage")
            await close_pool(state.engine)

    async def __aenter__(self) -> PersistenceManager:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # ========================================================================
    # State Checks
    # ========================================================================

    @property
    def is_enabled(self) -> bool:
        return isinstance(self._state, _Enabled)

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def disabled_reason(self) -> Optional[str]:
        state = self._state
        return state.reason if isinstance(state, _Disabled) else None

    def _request_state(self, operation: str) -> Optional[_Enabled]:
        if self._closed:
            raise PersistenceClosedError(operation)
        state = self._state
        return state if isinstance(state, _Enabled) else None

    def _background_state(self, operation: str) -> Optional[_Enabled]:
        if self._closed:
            logger.debug(
                "Dropping background write after close",
                extra={"db_operation": operation},
            )
            return None
        state = self._state
        return state if isinstance(state, _Enabled) else None

    def _submit(
        self,
        name: str,
        call: Callable[..., Awaitable[Any]],
        *args: Any,
    ) -> None:
        self._executor.submit(
            functools.partial(self._run_background, name, functools.partial(call, *args)),
            name=name,
        )

    async def _run_background(
        self, name: str, job: Callable[[], Awaitable[Any]]
    ) -> None:
        # Jobs queued before close() must not reopen the disposed pool.
        if self._closed:
            logger.debug(
                "Skipping background write queued before close",
                extra={"db_operation": name},
            )
            return
        await job()

    # ========================================================================
    # Fire-and-forget Bulk Writes
    # ========================================================================

    def save_users(self, users: Iterable[User]) -> None:
        batch = list(users)
        if not batch:
            return
        state = self._background_state("save_users")
        if state is None:
            return
        self._submit("save_users", state.users.save, batch)

    def insert_reporting(
        self,
        aggregations: Mapping[AggregationKey, AggregationValue],
        graph_type: GraphType,
    ) -> None:
        if not aggregations:
            return
        state = self._background_state("insert_reporting")
        if state is None:
            return
        snapshot: Dict[AggregationKey, AggregationValue] = dict(aggregations)
        self._submit(
            f"insert_reporting[{graph_type.label}]",
            state.reporting.insert,
            snapshot,
            graph_type,
        )

    def clean_old_reporting_records(self, now: Optional[datetime] = None) -> None:
        state = self._background_state("clean_old_reporting_records")
        if state is None:
            return
        self._submit(
            "clean_old_reporting_records",
            state.reporting.clean_old_reporting_records,
            now or datetime.now(timezone.utc),
        )

    # ========================================================================
    # Request/response Operations
    # ========================================================================

    async def select_redeem_by_token(self, token: str) -> Optional[Redeem]:
        state = self._request_state("select_redeem_by_token")
        if state is None:
            return None
        return await state.redeems.select_by_token(token)

    async def update_redeem(self, username: str, token: str) -> bool:
        """
        Redeem ``token`` for ``username``.

        Returns
        -------
        bool
            True only for the single caller whose update took effect.

        Raises
        ------
        PersistenceDisabledError
            If separate storage is disabled.
        """
        state = self._request_state("update_redeem")
        if state is None:
            raise PersistenceDisabledError("update_redeem")
        async with LogContext(
            username=username, component="persistence", operation="update_redeem"
        ):
            return await state.redeems.update(username, token)

    async def insert_redeems(self, redeems: Iterable[Redeem]) -> None:
        batch = list(redeems)
        state = self._request_state("insert_redeems")
        if state is None or not batch:
            return
        await state.redeems.insert_batch(batch)

    async def execute_sql(self, sql: str) -> None:
        state = self._request_state("execute_sql")
        if state is None:
            return
        await state.statements.execute(sql)

    async def get_connection(self) -> Optional[AsyncConnection]:
        """
        Borrow a raw pooled connection, or ``None`` when disabled.

        The caller owns the connection and must ``await conn.close()`` it,
        typically in a ``finally`` block.

        Raises
        ------
        DatabaseError
            If no connection could be acquired within the pool timeout.
        """
        state = self._request_state("get_connection")
        if state is None:
            return None
        try:
            return await state.engine.connect()
        except (SQLAlchemyError, OSError, asyncio.TimeoutError) as exc:
            logger.error(
                "Could not acquire a pooled connection",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )
            raise DatabaseError("get_connection", exc) from exc

    # ========================================================================
    # Health & Pool Metrics
    # ========================================================================

    async def health_check(self) -> bool:
        """Run ``SELECT 1``; False when disabled, closed or unreachable."""
        state = self._state
        if self._closed or not isinstance(state, _Enabled):
            PersistenceMetrics.record_health_check(success=False, duration_ms=0.0)
            return False

        start = time.perf_counter()
        success = False
        try:
            async with state.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            success = True
        except Exception as exc:
            logger.warning(
                "Separate DB storage health check failed",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )
        finally:
            PersistenceMetrics.record_health_check(
                success=success,
                duration_ms=(time.perf_counter() - start) * 1000.0,
            )
        return success

    def get_pool_metrics(self) -> Dict[str, int]:
        """
        Current pool utilization.

        All values are 0 when disabled or closed.
        """
        state = self._state
        if self._closed or not isinstance(state, _Enabled):
            return {"pool_size": 0, "checked_out": 0, "checked_in": 0, "overflow": 0}

        pool = state.engine.pool
        return {
            "pool_size": pool.size(),
            "checked_out": pool.checkedout(),
            "checked_in": pool.checkedin(),
            "overflow": max(pool.overflow(), 0),
        }

    def record_pool_metrics(self) -> None:
        PersistenceMetrics.record_pool_metrics(**self.get_pool_metrics())
