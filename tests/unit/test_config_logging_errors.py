"""
Unit tests for the ambient stack: Config parsing, logging, metrics and the
exception hierarchy.
"""

import logging

import pytest

from iot_persistence.core.config.config import Config
from iot_persistence.core.exceptions import (
    DataIntegrityError,
    DatabaseError,
    ErrorSeverity,
    PersistenceDisabledError,
    get_error_severity,
    is_transient_error,
)
from iot_persistence.core.logging import (
    PACKAGE_LOGGER,
    LogContext,
    get_log_context,
    is_logging_configured,
    setup_logging,
    shutdown_logging,
)
from iot_persistence.database.metrics import (
    AbstractPersistenceMetricsBackend,
    PersistenceMetrics,
)


class TestConfig:
    @pytest.fixture(autouse=True)
    def reload_config(self):
        yield
        Config.load()

    def test_integer_override(self, monkeypatch):
        monkeypatch.setenv("BACKGROUND_WORKERS", "8")

        Config.load()

        assert Config.BACKGROUND_WORKERS == 8

    def test_out_of_range_uses_default(self, monkeypatch, caplog):
        monkeypatch.setenv("BACKGROUND_WORKERS", "0")

        with caplog.at_level(logging.WARNING):
            Config.load()

        assert Config.BACKGROUND_WORKERS == 4
        assert "below minimum" in caplog.text

    def test_invalid_boolean_uses_default(self, monkeypatch):
        monkeypatch.setenv("LOG_TO_FILE", "maybe")

        Config.load()

        assert Config.LOG_TO_FILE is False

    def test_summary_lists_storage_settings(self, monkeypatch):
        monkeypatch.setenv("DB_PROPERTIES_FILE", "/etc/iot/db.properties")

        Config.load()
        summary = Config.get_config_summary()

        assert summary["db_properties_file"] == "/etc/iot/db.properties"
        assert summary["reporting_minute_retention_minutes"] == 360

    def test_testing_environment_detected(self):
        assert Config.is_testing() is True
        assert Config.is_production() is False


class TestLogContext:
    def test_scoped_context_restored(self):
        with LogContext(username="alice@example.com", operation="update_redeem"):
            context = get_log_context()
            assert context["username"] == "alice@example.com"
            assert context["operation"] == "update_redeem"
            assert context["correlation_id"]

        assert get_log_context() == {}

    async def test_async_context(self):
        async with LogContext(component="persistence", correlation_id="req-1"):
            assert get_log_context()["correlation_id"] == "req-1"

        assert get_log_context() == {}


class TestLoggingSetup:
    @pytest.fixture
    def host_handler(self):
        handler = logging.NullHandler()
        root = logging.getLogger()
        root.addHandler(handler)
        yield handler
        root.removeHandler(handler)
        shutdown_logging()

    def test_import_leaves_root_logger_alone(self, host_handler):
        package_logger = logging.getLogger(PACKAGE_LOGGER)

        assert host_handler in logging.getLogger().handlers
        assert is_logging_configured() is False
        assert package_logger.propagate is True
        assert any(isinstance(h, logging.NullHandler) for h in package_logger.handlers)

    def test_setup_scopes_handlers_to_package_logger(self, host_handler):
        root_handlers = list(logging.getLogger().handlers)

        setup_logging()

        package_logger = logging.getLogger(PACKAGE_LOGGER)
        assert is_logging_configured() is True
        assert logging.getLogger().handlers == root_handlers
        assert package_logger.propagate is False

        shutdown_logging()

        assert is_logging_configured() is False
        assert package_logger.propagate is True
        assert logging.getLogger().handlers == root_handlers

    def test_setup_is_idempotent(self, host_handler):
        setup_logging()
        handlers = list(logging.getLogger(PACKAGE_LOGGER).handlers)

        setup_logging()

        assert logging.getLogger(PACKAGE_LOGGER).handlers == handlers


class TestExceptions:
    def test_database_error_is_retryable(self):
        error = DatabaseError("RedeemDao.update", TimeoutError("pool timeout"))

        assert is_transient_error(error) is True
        assert get_error_severity(error) is ErrorSeverity.ERROR
        assert error.details["error_type"] == "TimeoutError"

    def test_integrity_error_is_not_retryable(self):
        error = DataIntegrityError("RedeemDao.insert_batch", ValueError("duplicate"))

        assert isinstance(error, DatabaseError)
        assert is_transient_error(error) is False
        assert get_error_severity(error) is ErrorSeverity.WARNING
        assert int(error.severity) == logging.WARNING
        assert error.error_code == "DATA_INTEGRITY_ERROR"

    def test_disabled_error_code(self):
        error = PersistenceDisabledError("update_redeem")

        assert error.error_code == "PERSISTENCE_DISABLED"
        assert "update_redeem" in str(error)

    def test_foreign_exceptions(self):
        assert is_transient_error(RuntimeError()) is False
        assert get_error_severity(RuntimeError()) is ErrorSeverity.ERROR


class TestPersistenceMetrics:
    @pytest.fixture
    def backend(self, mocker):
        backend = mocker.create_autospec(AbstractPersistenceMetricsBackend, instance=True)
        PersistenceMetrics.configure_backend(backend)
        yield backend
        PersistenceMetrics.configure_backend(None)

    def test_events_forwarded_to_backend(self, backend):
        PersistenceMetrics.record_query(
            operation="RedeemDao.update",
            duration_ms=1.5,
            success=True,
            error_type=None,
            rows=1,
        )
        PersistenceMetrics.record_background_job(name="save_users", outcome="dropped")

        backend.record_query.assert_called_once_with(
            operation="RedeemDao.update",
            duration_ms=1.5,
            success=True,
            error_type=None,
            rows=1,
        )
        backend.record_background_job.assert_called_once_with(
            name="save_users", outcome="dropped", duration_ms=0.0
        )

    async def test_pool_metrics_from_manager(self, backend, disabled_manager):
        disabled_manager.record_pool_metrics()

        backend.record_pool_metrics.assert_called_once_with(
            pool_size=0, checked_out=0, checked_in=0, overflow=0
        )
