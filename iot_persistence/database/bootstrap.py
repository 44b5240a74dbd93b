"""
Persistence Subsystem Bootstrap

Purpose
-------
Single entry point for bringing the persistence subsystem up and down:
background executor, PersistenceManager, and the retention worker factory.

Responsibilities
----------------
- Create and start a BackgroundExecutor from Config when none is supplied
- Create and initialize the PersistenceManager
- Shut everything down in order, without raising

Logging is left to the host. A host without its own logging setup calls
``iot_persistence.core.logging.setup_logging()`` before startup.

Shutdown Sequence
-----------------
1. Drain and stop the executor, so queued writes reach the pool
2. Close the manager, releasing the pool
3. Stop the log listener thread, if ``setup_logging()`` started one

Usage Example
-------------
>>> executor = BackgroundExecutor.from_config()
>>> manager = await initialize_persistence_subsystem(executor)
>>> ...
>>> await shutdown_persistence_subsystem(manager, executor)
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

from iot_persistence.core.background.executor import BackgroundExecutor
from iot_persistence.core.config.config import Config
from iot_persistence.core.logging.logger import get_logger, shutdown_logging
from iot_persistence.database.manager import PersistenceManager
from iot_persistence.database.retention import ReportingRetentionWorker

logger = get_logger(__name__)


async def initialize_persistence_subsystem(
    executor: Optional[BackgroundExecutor] = None,
    *,
    properties_file: Optional[Union[str, Path]] = None,
) -> PersistenceManager:
    """
    Start the executor (if needed) and return an initialized manager.

    Never raises for an absent or unreachable store; check
    ``manager.is_enabled`` instead.
    """
    logger.info(
        "Initializing persistence subsystem",
        extra={"config": Config.get_config_summary()},
    )

    if executor is None:
        executor = BackgroundExecutor.from_config()
    if not executor.is_running:
        await executor.start()

    manager = await PersistenceManager.create(executor, properties_file)

    logger.info(
        "Persistence subsystem initialized",
        extra={
            "enabled": manager.is_enabled,
            "disabled_reason": manager.disabled_reason,
            "executor": executor.get_status(),
        },
    )
    return manager


async def shutdown_persistence_subsystem(
    manager: Optional[PersistenceManager],
    executor: Optional[BackgroundExecutor],
) -> None:
    """Stop the executor, close the manager, then flush package logging. Never raises."""
    logger.info("Shutting down persistence subsystem")

    if executor is not None:
        try:
            await executor.stop()
        except Exception as exc:
            logger.error(
                "Error stopping background executor",
                extra={"error": str(exc), "error_type": type(exc).__name__},
                exc_info=True,
            )

    if manager is not None:
        try:
            await manager.close()
        except Exception as exc:
            logger.error(
                "Error closing PersistenceManager",
                extra={"error": str(exc), "error_type": type(exc).__name__},
                exc_info=True,
            )

    logger.info("Persistence subsystem shutdown complete")
    shutdown_logging()


def create_retention_worker(manager: PersistenceManager) -> ReportingRetentionWorker:
    """Build a retention worker using REPORTING_CLEANUP_INTERVAL_SECONDS."""
    worker = ReportingRetentionWorker(
        manager,
        interval_seconds=float(Config.REPORTING_CLEANUP_INTERVAL_SECONDS),
    )
    logger.debug(
        "ReportingRetentionWorker created",
        extra={"interval_seconds": Config.REPORTING_CLEANUP_INTERVAL_SECONDS},
    )
    return worker
