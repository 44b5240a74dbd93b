"""
Connection Pool Factory

Purpose
-------
Turn a loaded ``DatabaseProperties`` source into a ready, probed
``AsyncEngine`` with a small fixed-size connection pool.

Responsibilities
----------------
- Translate the ``jdbc.url`` property into a SQLAlchemy async URL
- Build an immutable PoolSettings snapshot (pool size, timeouts, credentials)
- Create the engine with ``AsyncAdaptedQueuePool``
- Probe the pool with ``SELECT 1`` before handing it out
- Dispose the engine and raise DatabaseInitializationError on any failure

Non-Responsibilities
--------------------
- Deciding what a failure means for the application (PersistenceManager
  downgrades to disabled mode)
- Schema management

Pool Configuration
------------------
- Fixed size of ``POOL_SIZE`` connections, no overflow
- Acquisition timeout taken from ``connection.timeout.millis``
  (default 30000)
- Connections are never recycled on age; ``pool_pre_ping`` replaces dead
  ones on checkout

URL Translation
---------------
===================================================  ===========================================
``jdbc.url``                                         engine URL
===================================================  ===========================================
``jdbc:postgresql://host:5432/blynk``                ``postgresql+asyncpg://host:5432/blynk``
``jdbc:sqlite:/var/lib/iot/reporting.db``            ``sqlite+aiosqlite:////var/lib/iot/reporting.db``
``postgresql+asyncpg://host/blynk``                  unchanged
===================================================  ===========================================
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy import text
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import AsyncAdaptedQueuePool

from iot_persistence.core.config.properties import (
    CONNECTION_TIMEOUT_KEY,
    JDBC_URL_KEY,
    DatabaseProperties,
)
from iot_persistence.core.logging.logger import get_logger
from iot_persistence.database.metrics import PersistenceMetrics

logger = get_logger(__name__)

POOL_SIZE = 3
DEFAULT_CONNECTION_TIMEOUT_MS = 30_000

_JDBC_PREFIX = "jdbc:"

_ASYNC_DRIVERS: Dict[str, str] = {
    "postgresql": "postgresql+asyncpg",
    "postgres": "postgresql+asyncpg",
    "sqlite": "sqlite+aiosqlite",
}


class DatabaseInitializationError(RuntimeError):
    """Raised when the connection pool cannot be created or probed."""


# ============================================================================
# URL Translation
# ============================================================================


def to_async_url(raw_url: str) -> URL:
    """
    Convert a JDBC-style or plain database URL into an async SQLAlchemy URL.

    Raises
    ------
    DatabaseInitializationError
        If the URL cannot be parsed or names an unsupported backend.
    """
    url_text = raw_url.strip()
    if url_text.startswith(_JDBC_PREFIX):
        url_text = url_text[len(_JDBC_PREFIX):]

    # jdbc:sqlite:/path and jdbc:sqlite:relative.db have no "//"
    if url_text.startswith("sqlite:") and not url_text.startswith("sqlite://"):
        url_text = "sqlite:///" + url_text[len("sqlite:"):]

    try:
        url = make_url(url_text)
    except (ArgumentError, ValueError) as exc:
        # make_url raises a bare ValueError for a non-numeric port
        raise DatabaseInitializationError(
            f"Invalid {JDBC_URL_KEY} value: {raw_url!r}"
        ) from exc

    if "+" in url.drivername:
        return url

    async_driver = _ASYNC_DRIVERS.get(url.drivername)
    if async_driver is None:
        raise DatabaseInitializationError(
            f"Unsupported database backend {url.drivername!r} in {JDBC_URL_KEY}"
        )
    return url.set(drivername=async_driver)


# ============================================================================
# Pool Settings Snapshot
# ============================================================================


@dataclass(frozen=True)
class PoolSettings:
    """Immutable pool configuration derived from a properties source."""

    url: URL
    pool_size: int = POOL_SIZE
    connection_timeout_ms: int = DEFAULT_CONNECTION_TIMEOUT_MS
    echo: bool = False

    @classmethod
    def from_properties(cls, properties: DatabaseProperties) -> PoolSettings:
        """
        Build settings from ``properties``.

        Raises
        ------
        DatabaseInitializationError
            If ``jdbc.url`` is missing or unusable.
        """
        raw_url = properties.jdbc_url
        if not raw_url:
            raise DatabaseInitializationError(
                f"{JDBC_URL_KEY} is not set in {properties.source}"
            )

        url = to_async_url(raw_url)
        if not url.drivername.startswith("sqlite"):
            if properties.user:
                url = url.set(username=properties.user)
            if properties.password:
                url = url.set(password=properties.password)

        timeout_ms = properties.connection_timeout_ms(DEFAULT_CONNECTION_TIMEOUT_MS)
        if timeout_ms <= 0:
            logger.warning(
                f"{CONNECTION_TIMEOUT_KEY}={timeout_ms} must be positive, "
                f"using default {DEFAULT_CONNECTION_TIMEOUT_MS}",
                extra={"source": properties.source},
            )
            timeout_ms = DEFAULT_CONNECTION_TIMEOUT_MS

        return cls(url=url, connection_timeout_ms=timeout_ms)

    @property
    def timeout_seconds(self) -> float:
        return self.connection_timeout_ms / 1000.0

    @property
    def url_scheme(self) -> str:
        return self.url.drivername

    @property
    def safe_url(self) -> str:
        return self.url.render_as_string(hide_password=True)

    def engine_kwargs(self) -> Dict[str, Any]:
        return {
            "echo": self.echo,
            "poolclass": AsyncAdaptedQueuePool,
            "pool_size": self.pool_size,
            "max_overflow": 0,
            "pool_timeout": self.timeout_seconds,
            "pool_recycle": -1,
            "pool_pre_ping": True,
            "connect_args": {"timeout": self.timeout_seconds},
        }


# ============================================================================
# Pool Lifecycle
# ============================================================================


async def open_pool(settings: PoolSettings) -> AsyncEngine:
    """
    Create the engine described by ``settings`` and verify it with a probe.

    Raises
    ------
    DatabaseInitializationError
        If engine creation or the probe fails. Any partially created engine
        is disposed first.
    """
    engine: Optional[AsyncEngine] = None
    start = time.perf_counter()

    try:
        engine = create_async_engine(settings.url, **settings.engine_kwargs())
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    except Exception as exc:
        if engine is not None:
            await engine.dispose()
        PersistenceMetrics.record_pool_open_failed(error_type=type(exc).__name__)
        raise DatabaseInitializationError(
            f"Could not open connection pool for {settings.safe_url}: {exc}"
        ) from exc

    PersistenceMetrics.record_pool_opened(
        url_scheme=settings.url_scheme,
        pool_size=settings.pool_size,
        connection_timeout_ms=settings.connection_timeout_ms,
    )
    logger.info(
        "Connection pool opened",
        extra={
            "url": settings.safe_url,
            "pool_size": settings.pool_size,
            "connection_timeout_ms": settings.connection_timeout_ms,
            "duration_ms": (time.perf_counter() - start) * 1000.0,
        },
    )
    return engine


async def close_pool(engine: AsyncEngine) -> None:
    await engine.dispose()
    PersistenceMetrics.record_pool_closed()
