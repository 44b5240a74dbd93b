"""
Unit tests for PersistenceManager.

Testing Strategy
----------------
- Disabled mode uses a missing or empty properties file (no database)
- Enabled mode patches open_pool and the DAO classes with mocks, so the
  routing of each operation can be checked without a store
"""

import asyncio
import logging

import pytest
import pytest_asyncio

from iot_persistence.core.exceptions import (
    DatabaseError,
    PersistenceClosedError,
    PersistenceDisabledError,
)
from iot_persistence.database.manager import PersistenceManager
from iot_persistence.database.pool import DatabaseInitializationError
from iot_persistence.domain.models.redeem import Redeem
from iot_persistence.domain.models.reporting import (
    AggregationKey,
    AggregationValue,
    GraphType,
)
from iot_persistence.domain.models.user import User

MANAGER_MODULE = "iot_persistence.database.manager"


# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture
def postgres_properties_file(write_properties):
    return write_properties({"jdbc.url": "jdbc:postgresql://localhost:5432/blynk"})


@pytest.fixture
def fake_engine(mocker):
    engine = mocker.MagicMock(name="AsyncEngine")
    engine.dispose = mocker.AsyncMock()
    return engine


@pytest.fixture
def fake_daos(mocker):
    """Patch every DAO class used by the manager; returns the instances."""
    daos = {}
    for class_name in ("UserDao", "ReportingDao", "RedeemDao", "StatementDao"):
        dao_class = mocker.patch(f"{MANAGER_MODULE}.{class_name}")
        instance = dao_class.return_value
        daos[class_name] = instance
    daos["UserDao"].save = mocker.AsyncMock(return_value=1)
    daos["ReportingDao"].insert = mocker.AsyncMock(return_value=1)
    daos["ReportingDao"].clean_old_reporting_records = mocker.AsyncMock(return_value={})
    daos["RedeemDao"].select_by_token = mocker.AsyncMock(return_value=None)
    daos["RedeemDao"].update = mocker.AsyncMock(return_value=True)
    daos["RedeemDao"].insert_batch = mocker.AsyncMock(return_value=1)
    daos["StatementDao"].execute = mocker.AsyncMock(return_value=0)
    return daos


@pytest_asyncio.fixture
async def mocked_manager(mocker, executor, postgres_properties_file, fake_engine, fake_daos):
    mocker.patch(f"{MANAGER_MODULE}.open_pool", mocker.AsyncMock(return_value=fake_engine))
    manager = await PersistenceManager.create(executor, postgres_properties_file)
    yield manager
    await manager.close()


# ============================================================================
# DISABLED MODE
# ============================================================================


class TestDisabledMode:
    """Without a usable store, every operation degrades to a no-op."""

    async def test_missing_properties_disables(self, executor, missing_properties, caplog):
        with caplog.at_level(logging.WARNING):
            manager = await PersistenceManager.create(executor, missing_properties)

        assert manager.is_enabled is False
        assert f"No {missing_properties} file found. Separate DB storage disabled." in caplog.text

    async def test_empty_properties_disables(self, executor, tmp_path):
        path = tmp_path / "db.properties"
        path.write_text("# nothing configured\n", encoding="utf-8")

        manager = await PersistenceManager.create(executor, path)

        assert manager.is_enabled is False

    async def test_pool_failure_disables(self, mocker, executor, postgres_properties_file, caplog):
        mocker.patch(
            f"{MANAGER_MODULE}.open_pool",
            mocker.AsyncMock(side_effect=DatabaseInitializationError("connection refused")),
        )

        with caplog.at_level(logging.ERROR):
            manager = await PersistenceManager.create(executor, postgres_properties_file)

        assert manager.is_enabled is False
        assert "connection refused" in manager.disabled_reason
        assert "Separate DB storage disabled" in caplog.text

    async def test_malformed_url_disables(self, executor, write_properties, caplog):
        path = write_properties({"jdbc.url": "jdbc:postgresql://localhost:notaport/blynk"})

        with caplog.at_level(logging.ERROR):
            manager = await PersistenceManager.create(executor, path)

        assert manager.is_enabled is False
        assert "jdbc.url" in manager.disabled_reason
        assert "Separate DB storage disabled" in caplog.text

    async def test_unsupported_backend_disables(self, executor, write_properties):
        path = write_properties({"jdbc.url": "jdbc:oracle:thin:@localhost:1521:xe"})

        manager = await PersistenceManager.create(executor, path)

        assert manager.is_enabled is False

    async def test_undecodable_properties_disable(self, executor, tmp_path):
        path = tmp_path / "db.properties"
        path.write_bytes(b"jdbc.url=jdbc:sqlite:/tmp/x\xff\xfe.db\n")

        manager = await PersistenceManager.create(executor, path)

        assert manager.is_enabled is False
        assert manager.disabled_reason == "no properties"

    async def test_unexpected_pool_error_disables(
        self, mocker, executor, postgres_properties_file
    ):
        mocker.patch(
            f"{MANAGER_MODULE}.open_pool",
            mocker.AsyncMock(side_effect=RuntimeError("driver exploded")),
        )

        manager = await PersistenceManager.create(executor, postgres_properties_file)

        assert manager.is_enabled is False
        assert manager.disabled_reason == "driver exploded"

    async def test_operations_are_noops(self, disabled_manager, executor):
        key = AggregationKey("a@b.c", 1, "v", 1, 1)

        assert disabled_manager.save_users([User("a@b.c")]) is None
        assert disabled_manager.insert_reporting({key: AggregationValue(1.0)}, GraphType.MINUTE) is None
        assert disabled_manager.clean_old_reporting_records() is None
        assert await disabled_manager.select_redeem_by_token("t") is None
        assert await disabled_manager.insert_redeems([Redeem.issue("t", "acme", 1)]) is None
        assert await disabled_manager.execute_sql("DELETE FROM users") is None
        assert await disabled_manager.get_connection() is None
        assert await disabled_manager.health_check() is False
        assert disabled_manager.get_pool_metrics()["pool_size"] == 0
        assert executor.get_status()["jobs_submitted"] == 0

    async def test_update_redeem_raises_when_disabled(self, disabled_manager):
        with pytest.raises(PersistenceDisabledError):
            await disabled_manager.update_redeem("alice@example.com", "t")

    async def test_close_is_noop(self, disabled_manager):
        await disabled_manager.close()
        await disabled_manager.close()

        assert disabled_manager.is_closed


# ============================================================================
# ENABLED MODE (mocked store)
# ============================================================================


class TestInitialization:
    async def test_initialize_is_idempotent(self, mocker, executor, postgres_properties_file, fake_engine, fake_daos):
        open_pool = mocker.patch(
            f"{MANAGER_MODULE}.open_pool", mocker.AsyncMock(return_value=fake_engine)
        )
        manager = PersistenceManager(executor, postgres_properties_file)

        await asyncio.gather(manager.initialize(), manager.initialize())
        await manager.initialize()

        assert manager.is_enabled
        open_pool.assert_awaited_once()
        await manager.close()


class TestFireAndForget:
    async def test_empty_batches_never_reach_executor(self, mocked_manager, fake_daos, executor):
        mocked_manager.save_users([])
        mocked_manager.insert_reporting({}, GraphType.HOURLY)
        await mocked_manager.insert_redeems([])
        await executor.drain()

        assert executor.get_status()["jobs_submitted"] == 0
        fake_daos["UserDao"].save.assert_not_awaited()
        fake_daos["ReportingDao"].insert.assert_not_awaited()
        fake_daos["RedeemDao"].insert_batch.assert_not_awaited()

    async def test_save_users_returns_before_write_completes(self, mocked_manager, fake_daos, executor):
        release = asyncio.Event()
        written = []

        async def slow_save(users):
            await release.wait()
            written.extend(users)
            return len(users)

        fake_daos["UserDao"].save.side_effect = slow_save
        users = [User("a@b.c"), User("b@b.c")]

        result = mocked_manager.save_users(users)

        assert result is None
        assert written == []

        release.set()
        await executor.drain()
        assert [user.email for user in written] == ["a@b.c", "b@b.c"]

    async def test_insert_reporting_routes_graph_type(self, mocked_manager, fake_daos, executor):
        key = AggregationKey("a@b.c", 1, "v", 4, 10)
        aggregations = {key: AggregationValue(3.0)}

        mocked_manager.insert_reporting(aggregations, GraphType.DAILY)
        await executor.drain()

        fake_daos["ReportingDao"].insert.assert_awaited_once_with(aggregations, GraphType.DAILY)

    async def test_background_failure_not_surfaced(self, mocked_manager, fake_daos, executor):
        fake_daos["UserDao"].save.side_effect = RuntimeError("write failed")

        mocked_manager.save_users([User("a@b.c")])
        await executor.drain()

        assert executor.get_status()["jobs_failed"] == 1

    async def test_clean_old_records_defaults_to_aware_now(self, mocked_manager, fake_daos, executor):
        mocked_manager.clean_old_reporting_records()
        await executor.drain()

        (now,) = fake_daos["ReportingDao"].clean_old_reporting_records.await_args.args
        assert now.tzinfo is not None


class TestRequestResponse:
    async def test_update_redeem_delegates(self, mocked_manager, fake_daos):
        assert await mocked_manager.update_redeem("alice@example.com", "t") is True
        fake_daos["RedeemDao"].update.assert_awaited_once_with("alice@example.com", "t")

    async def test_failure_propagates(self, mocked_manager, fake_daos):
        fake_daos["RedeemDao"].select_by_token.side_effect = RuntimeError("db down")

        with pytest.raises(RuntimeError):
            await mocked_manager.select_redeem_by_token("t")

    async def test_connection_timeout_wrapped(self, mocked_manager, fake_engine, mocker):
        fake_engine.connect = mocker.AsyncMock(side_effect=asyncio.TimeoutError())

        with pytest.raises(DatabaseError) as exc_info:
            await mocked_manager.get_connection()

        assert exc_info.value.operation == "get_connection"


class TestClose:
    async def test_close_disposes_once(self, mocked_manager, fake_engine):
        await mocked_manager.close()
        await mocked_manager.close()

        fake_engine.dispose.assert_awaited_once()

    async def test_request_after_close_raises(self, mocked_manager):
        await mocked_manager.close()

        with pytest.raises(PersistenceClosedError):
            await mocked_manager.select_redeem_by_token("t")

    async def test_background_after_close_dropped(self, mocked_manager, fake_daos, executor):
        await mocked_manager.close()

        mocked_manager.save_users([User("a@b.c")])
        await executor.drain()

        fake_daos["UserDao"].save.assert_not_awaited()
        assert executor.get_status()["jobs_submitted"] == 0

    async def test_async_context_manager_closes(self, mocker, executor, postgres_properties_file, fake_engine, fake_daos):
        mocker.patch(f"{MANAGER_MODULE}.open_pool", mocker.AsyncMock(return_value=fake_engine))

        async with PersistenceManager(executor, postgres_properties_file) as manager:
            assert manager.is_enabled

        assert manager.is_closed
        fake_engine.dispose.assert_awaited_once()
