"""
Pytest Configuration and Fixtures for iot_persistence Tests
============================================================

Purpose
-------
Shared fixtures for the persistence test suite: background executor,
properties files, a schema-initialized SQLite store, managers in enabled
and disabled mode, and an optional PostgreSQL testcontainer.

Architecture Notes
------------------
- Unit tests use mocks or no database at all
- Integration tests use a temporary SQLite file through aiosqlite
- PostgreSQL tests use testcontainers and are skipped without Docker
- Every test gets its own database file (function scope)
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import AsyncGenerator, Callable, Generator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from iot_persistence.core.background.executor import BackgroundExecutor
from iot_persistence.core.config.config import Config
from iot_persistence.core.config.properties import DatabaseProperties
from iot_persistence.core.logging.logger import get_logger
from iot_persistence.database.manager import PersistenceManager
from iot_persistence.database.models import Base
from iot_persistence.database.pool import PoolSettings, open_pool

logger = get_logger(__name__)

# ============================================================================
# PYTEST CONFIGURATION
# ============================================================================


def pytest_configure(config):
    """Configure test environment."""
    os.environ["ENVIRONMENT"] = "testing"
    os.environ["LOG_LEVEL"] = "DEBUG"
    Config.load()


# ============================================================================
# PROPERTIES FILES
# ============================================================================


@pytest.fixture
def write_properties(tmp_path: Path) -> Callable[..., Path]:
    """
    Factory writing a ``key=value`` properties file into tmp_path.

    >>> path = write_properties({"jdbc.url": "jdbc:sqlite:/tmp/x.db"})
    """

    def _write(entries: dict, filename: str = "db.properties") -> Path:
        path = tmp_path / filename
        lines = [f"{key}={value}" for key, value in entries.items()]
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    return _write


@pytest.fixture
def missing_properties(tmp_path: Path) -> Path:
    return tmp_path / "absent.properties"


# ============================================================================
# SQLITE STORE
# ============================================================================


@pytest_asyncio.fixture
async def sqlite_path(tmp_path: Path) -> Path:
    """Temporary SQLite file with the full schema created."""
    path = tmp_path / "iot.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{path}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()
    return path


@pytest.fixture
def sqlite_properties(write_properties, sqlite_path: Path) -> Path:
    return write_properties(
        {
            "jdbc.url": f"jdbc:sqlite:{sqlite_path}",
            "connection.timeout.millis": "5000",
        }
    )


@pytest_asyncio.fixture
async def sqlite_engine(sqlite_properties: Path) -> AsyncGenerator[AsyncEngine, None]:
    """Pooled engine opened exactly as the manager opens it."""
    settings = PoolSettings.from_properties(DatabaseProperties.load(sqlite_properties))
    engine = await open_pool(settings)
    yield engine
    await engine.dispose()


# ============================================================================
# EXECUTOR & MANAGERS
# ============================================================================


@pytest_asyncio.fixture
async def executor() -> AsyncGenerator[BackgroundExecutor, None]:
    executor = BackgroundExecutor(workers=2, max_queue_size=100, shutdown_timeout=5.0)
    await executor.start()
    yield executor
    await executor.stop()


@pytest_asyncio.fixture
async def manager(
    executor: BackgroundExecutor, sqlite_properties: Path
) -> AsyncGenerator[PersistenceManager, None]:
    """Enabled manager backed by the temporary SQLite store."""
    manager = await PersistenceManager.create(executor, sqlite_properties)
    assert manager.is_enabled, manager.disabled_reason
    yield manager
    await executor.drain()
    await manager.close()


@pytest_asyncio.fixture
async def disabled_manager(
    executor: BackgroundExecutor, missing_properties: Path
) -> AsyncGenerator[PersistenceManager, None]:
    manager = await PersistenceManager.create(executor, missing_properties)
    yield manager
    await manager.close()


# ============================================================================
# TESTCONTAINERS FIXTURES (PostgreSQL)
# ============================================================================


@pytest.fixture(scope="session")
def postgres_container() -> Generator:
    """
    Start a PostgreSQL testcontainer, or skip when Docker is unavailable.

    Scope: session (container persists across all tests)
    """
    from testcontainers.postgres import PostgresContainer

    container = PostgresContainer(image="postgres:17-alpine", driver="asyncpg")
    try:
        container.start()
    except Exception as exc:
        pytest.skip(f"Docker is not available for PostgreSQL tests: {exc}")

    logger.info(
        "PostgreSQL testcontainer started",
        extra={"url": container.get_connection_url()},
    )
    yield container

    logger.info("Stopping PostgreSQL testcontainer")
    container.stop()


@pytest_asyncio.fixture
async def postgres_properties(postgres_container, write_properties) -> AsyncGenerator[Path, None]:
    """Properties pointing at a freshly created schema in the container."""
    url = postgres_container.get_connection_url()
    engine = create_async_engine(url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()

    yield write_properties(
        {"jdbc.url": url, "connection.timeout.millis": "10000"},
        filename="postgres.properties",
    )
