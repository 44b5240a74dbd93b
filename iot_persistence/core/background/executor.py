"""
Background Executor

Purpose
-------
Run fire-and-forget persistence jobs off the caller's path. Callers hand
over a zero-argument coroutine function and return immediately; a small
pool of asyncio worker tasks awaits the jobs in submission order.

Responsibilities
----------------
- Accept jobs without blocking via a bounded ``asyncio.Queue``
- Drop jobs (with a WARNING) when the queue is full or the executor stopped
- Contain job failures: log, count, keep the worker alive
- Drain outstanding jobs on shutdown within a bounded timeout
- Expose counters via get_status()

Non-Responsibilities
--------------------
- Retrying failed jobs (a failed batch is lost, by contract)
- Knowing what a job does (PersistenceManager builds the jobs)

Configuration Keys
------------------
- BACKGROUND_WORKERS                   : int (default 4)
- BACKGROUND_QUEUE_SIZE                : int (default 10000)
- BACKGROUND_SHUTDOWN_TIMEOUT_SECONDS  : int (default 10)

Example Usage
-------------
>>> executor = BackgroundExecutor.from_config()
>>> await executor.start()
>>> executor.submit(partial(user_dao.save, users), name="save_users")
>>> await executor.stop()
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

from iot_persistence.core.config.config import Config
from iot_persistence.core.exceptions import is_transient_error
from iot_persistence.core.logging.logger import get_logger
from iot_persistence.database.metrics import PersistenceMetrics

logger = get_logger(__name__)

Job = Callable[[], Awaitable[Any]]


class BackgroundExecutor:
    """Bounded queue of async jobs served by a fixed set of worker tasks."""

    def __init__(
        self,
        *,
        workers: int = 4,
        max_queue_size: int = 10_000,
        shutdown_timeout: float = 10.0,
    ) -> None:
        if workers < 1:
            raise ValueError(f"workers must be >= 1, got {workers}")

        self._worker_count = workers
        self._max_queue_size = max_queue_size
        self._shutdown_timeout = shutdown_timeout

        self._queue: asyncio.Queue[tuple[str, Job]] = asyncio.Queue(
            maxsize=max_queue_size
        )
        self._workers: List[asyncio.Task] = []
        self._is_running: bool = False
        self._is_stopped: bool = False

        # Metrics
        self._jobs_submitted: int = 0
        self._jobs_succeeded: int = 0
        self._jobs_failed: int = 0
        self._jobs_dropped: int = 0
        self._last_failure: Optional[str] = None

        logger.info(
            "BackgroundExecutor initialized",
            extra={
                "workers": workers,
                "max_queue_size": max_queue_size,
                "shutdown_timeout_seconds": shutdown_timeout,
            },
        )

    @classmethod
    def from_config(cls) -> BackgroundExecutor:
        return cls(
            workers=Config.BACKGROUND_WORKERS,
            max_queue_size=Config.BACKGROUND_QUEUE_SIZE,
            shutdown_timeout=float(Config.BACKGROUND_SHUTDOWN_TIMEOUT_SECONDS),
        )

    # ═══════════════════════════════════════════════════════════════════════
    # LIFECYCLE
    # ═══════════════════════════════════════════════════════════════════════

    @property
    def is_running(self) -> bool:
        return self._is_running

    async def start(self) -> None:
        """Spawn the worker tasks. Must be called from a running event loop."""
        if self._is_running:
            logger.warning("BackgroundExecutor already running")
            return
        if self._is_stopped:
            raise RuntimeError("BackgroundExecutor cannot be restarted after stop()")

        self._is_running = True
        self._workers = [
            asyncio.create_task(self._worker_loop(index), name=f"persistence-worker-{index}")
            for index in range(self._worker_count)
        ]
        logger.info("BackgroundExecutor started", extra={"workers": self._worker_count})

    async def stop(self, *, timeout: Optional[float] = None) -> None:
        """
        Stop accepting jobs, wait for queued ones, then cancel the workers.

        Jobs still queued when ``timeout`` (default: the configured shutdown
        timeout) expires are discarded and counted as dropped.
        """
        if self._is_stopped:
            return
        self._is_stopped = True

        if not self._is_running:
            self._discard_pending()
            return

        wait_for = self._shutdown_timeout if timeout is None else timeout
        try:
            await asyncio.wait_for(self._queue.join(), timeout=wait_for)
        except asyncio.TimeoutError:
            logger.warning(
                "BackgroundExecutor shutdown timed out; discarding pending jobs",
                extra={"pending": self._queue.qsize(), "timeout_seconds": wait_for},
            )

        self._is_running = False
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        self._discard_pending()

        logger.info("BackgroundExecutor stopped", extra=self.get_status())

    def _discard_pending(self) -> None:
        while True:
            try:
                name, _ = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            self._queue.task_done()
            self._record_drop(name, reason="shutdown")

    # ═══════════════════════════════════════════════════════════════════════
    # SUBMISSION
    # ═══════════════════════════════════════════════════════════════════════

    def submit(self, job: Job, *, name: str) -> None:
        """
        Enqueue ``job`` and return immediately.

        Never raises: a full queue or a stopped executor drops the job.
        """
        if self._is_stopped:
            self._record_drop(name, reason="stopped")
            return

        try:
            self._queue.put_nowait((name, job))
        except asyncio.QueueFull:
            self._record_drop(name, reason="queue_full")
            return

        self._jobs_submitted += 1

    async def drain(self) -> None:
        """Wait until every job submitted so far has finished."""
        if not self._is_running:
            logger.debug("drain() called on an executor that is not running")
            return
        await self._queue.join()

    def _record_drop(self, name: str, *, reason: str) -> None:
        self._jobs_dropped += 1
        PersistenceMetrics.record_background_job(name=name, outcome="dropped")
        logger.warning(
            "Background job dropped",
            extra={
                "job_name": name,
                "reason": reason,
                "jobs_dropped": self._jobs_dropped,
            },
        )

    # ═══════════════════════════════════════════════════════════════════════
    # WORKERS
    # ═══════════════════════════════════════════════════════════════════════

    async def _worker_loop(self, index: int) -> None:
        logger.debug("Background worker started", extra={"worker": index})
        while True:
            name, job = await self._queue.get()
            start = time.monotonic()
            try:
                await job()
                self._jobs_succeeded += 1
                PersistenceMetrics.record_background_job(
                    name=name,
                    outcome="succeeded",
                    duration_ms=(time.monotonic() - start) * 1000,
                )
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                self._jobs_failed += 1
                self._last_failure = f"{name}: {type(exc).__name__}: {exc}"
                PersistenceMetrics.record_background_job(
                    name=name,
                    outcome="failed",
                    duration_ms=(time.monotonic() - start) * 1000,
                )
                logger.warning(
                    "Background job failed",
                    extra={
                        "job_name": name,
                        "worker": index,
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                        "retryable": is_transient_error(exc),
                    },
                    exc_info=True,
                )
            finally:
                self._queue.task_done()

    # ═══════════════════════════════════════════════════════════════════════
    # STATUS
    # ═══════════════════════════════════════════════════════════════════════

    def get_status(self) -> Dict[str, Any]:
        return {
            "is_running": self._is_running,
            "workers": self._worker_count,
            "queue_size": self._queue.qsize(),
            "max_queue_size": self._max_queue_size,
            "jobs_submitted": self._jobs_submitted,
            "jobs_succeeded": self._jobs_succeeded,
            "jobs_failed": self._jobs_failed,
            "jobs_dropped": self._jobs_dropped,
            "last_failure": self._last_failure,
        }
