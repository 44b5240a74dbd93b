"""
Reporting Retention Worker

Purpose
-------
Periodically purge minute and hourly reporting averages that have aged out
of their retention windows.

Each tick hands a cleanup job to the PersistenceManager, which runs it on
the BackgroundExecutor; the worker itself never touches the database and
never waits for the purge to finish.

Configuration Keys
------------------
- REPORTING_CLEANUP_INTERVAL_SECONDS  : int (default 3600)
- REPORTING_MINUTE_RETENTION_MINUTES  : int (default 360)
- REPORTING_HOURLY_RETENTION_HOURS    : int (default 168)

Usage Example
-------------
>>> stop_event = asyncio.Event()
>>> worker = create_retention_worker(manager)
>>> task = asyncio.create_task(worker.run_forever(stop_event=stop_event))
>>> ...
>>> stop_event.set()
>>> await task
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable

from iot_persistence.core.logging.logger import get_logger

if TYPE_CHECKING:
    from iot_persistence.database.manager import PersistenceManager

logger = get_logger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ReportingRetentionWorker:
    def __init__(
        self,
        manager: PersistenceManager,
        *,
        interval_seconds: float,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        self._manager = manager
        self._interval_seconds = interval_seconds
        self._clock = clock
        self._ticks: int = 0

    @property
    def ticks(self) -> int:
        return self._ticks

    def tick_once(self) -> None:
        """Schedule one cleanup using the current time."""
        self._ticks += 1
        self._manager.clean_old_reporting_records(self._clock())

    async def run_forever(self, *, stop_event: asyncio.Event) -> None:
        """
        Schedule a cleanup every interval until ``stop_event`` is set.

        The first cleanup runs immediately.
        """
        if not self._manager.is_enabled:
            logger.info("Separate DB storage disabled; retention worker not started")
            return

        logger.info(
            "ReportingRetentionWorker started",
            extra={"interval_seconds": self._interval_seconds},
        )

        try:
            while not stop_event.is_set():
                self.tick_once()

                try:
                    await asyncio.wait_for(
                        stop_event.wait(),
                        timeout=self._interval_seconds,
                    )
                except asyncio.TimeoutError:
                    continue

        except Exception as exc:
            logger.error(
                "Unexpected error in ReportingRetentionWorker",
                extra={"error": str(exc), "error_type": type(exc).__name__},
                exc_info=True,
            )
            raise

        finally:
            logger.info("ReportingRetentionWorker stopped", extra={"ticks": self._ticks})
