"""
Logging Subsystem

Purpose
-------
Structured logging for the persistence package. Importing the package only
attaches a ``NullHandler`` to the ``iot_persistence`` logger, so records
propagate to whatever the host application configured. A host without its
own logging setup can call ``setup_logging()`` to get the package's
queue-backed console (and optional daily file) output.

Responsibilities
----------------
- Scope all handlers to the ``iot_persistence`` logger, never the root logger
- Ship records through a QueueHandler + QueueListener so handlers never block
  the event loop
- Enrich records with LogContext fields (username, operation, correlation id)
- Render JSON in production (or with LOG_JSON) and plain text otherwise
"""

from __future__ import annotations

import json
import logging
import queue
import sys
import uuid
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from logging import Logger
from logging.handlers import QueueHandler, QueueListener, TimedRotatingFileHandler
from typing import Any, Dict, List, Optional

from iot_persistence.core.config.config import Config

PACKAGE_LOGGER = "iot_persistence"

CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-40s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DAILY_BASENAME = "persistence_daily.json.log"
QUEUE_MAX_SIZE = 10_000

_request_context: ContextVar[Dict[str, Any]] = ContextVar("request_context", default={})

logging.getLogger(PACKAGE_LOGGER).addHandler(logging.NullHandler())


# ============================================================================
# Filters & Formatters
# ============================================================================


class ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        context = _request_context.get({})
        record.username = context.get("username", "N/A")
        record.correlation_id = context.get("correlation_id", "N/A")
        record.component = context.get("component") or record.name.split(".", 1)[0]
        record.operation = context.get("operation", "N/A")
        return True


class JSONFormatter(logging.Formatter):
    # Attributes every LogRecord carries; anything else came from ``extra=``.
    _RESERVED = set(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}
    _CONTEXT = ("username", "correlation_id", "component", "operation")

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for attr in self._CONTEXT:
            value = getattr(record, attr, None)
            if value not in (None, "N/A"):
                payload[attr] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in self._RESERVED and key not in self._CONTEXT
        }
        if extra:
            payload["extra"] = extra
        return json.dumps(payload, ensure_ascii=False, default=str)


class _DroppingQueueHandler(QueueHandler):
    def enqueue(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            sys.stderr.write("iot_persistence log queue full; dropping record\n")


# ============================================================================
# Setup / Shutdown
# ============================================================================

_listener: Optional[QueueListener] = None
_queue_handler: Optional[QueueHandler] = None


def _level() -> int:
    return getattr(logging, str(Config.LOG_LEVEL).upper(), logging.INFO)


def _use_json() -> bool:
    return Config.is_production() if Config.LOG_JSON is None else bool(Config.LOG_JSON)


def _build_handlers() -> List[logging.Handler]:
    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(
        JSONFormatter() if _use_json() else logging.Formatter(CONSOLE_FORMAT, DATE_FORMAT)
    )
    handlers: List[logging.Handler] = [console]

    if Config.LOG_TO_FILE:
        Config.LOGS_DIR.mkdir(parents=True, exist_ok=True)
        daily = TimedRotatingFileHandler(
            filename=str(Config.LOGS_DIR / DAILY_BASENAME),
            when="midnight",
            backupCount=1,
            encoding="utf-8",
            utc=True,
        )
        daily.setFormatter(JSONFormatter())
        handlers.append(daily)
    return handlers


def setup_logging() -> None:
    """
    Route ``iot_persistence`` records to the package's own handlers.

    Idempotent. Other loggers, including the root logger, are left alone.
    """
    global _listener, _queue_handler

    if _queue_handler is not None:
        return

    log_queue: "queue.Queue[logging.LogRecord]" = queue.Queue(QUEUE_MAX_SIZE)
    _listener = QueueListener(log_queue, *_build_handlers(), respect_handler_level=True)
    _listener.start()

    _queue_handler = _DroppingQueueHandler(log_queue)
    _queue_handler.addFilter(ContextFilter())

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(_level())
    package_logger.addHandler(_queue_handler)
    package_logger.propagate = False

    package_logger.debug(
        "Logging initialized",
        extra={"log_level": Config.LOG_LEVEL, "json": _use_json(), "file": Config.LOG_TO_FILE},
    )


def shutdown_logging() -> None:
    """Flush and stop the listener thread, then restore propagation."""
    global _listener, _queue_handler

    if _queue_handler is None:
        return

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.removeHandler(_queue_handler)
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)

    if _listener is not None:
        _listener.stop()
        for handler in _listener.handlers:
            handler.close()

    _listener = None
    _queue_handler = None


def is_logging_configured() -> bool:
    return _queue_handler is not None


# ============================================================================
# Public API
# ============================================================================


def get_logger(name: str) -> Logger:
    return logging.getLogger(name)


class LogContext:
    """
    Scoped log context, usable as a sync or async context manager.

    >>> async with LogContext(username="alice@example.com", operation="update_redeem"):
    ...     await manager.update_redeem("alice@example.com", token)
    """

    def __init__(
        self,
        username: Optional[str] = None,
        component: Optional[str] = None,
        operation: Optional[str] = None,
        correlation_id: Optional[str] = None,
        **extra: Any,
    ) -> None:
        self.context: Dict[str, Any] = {
            "username": username or "N/A",
            "component": component,
            "operation": operation,
            "correlation_id": correlation_id or uuid.uuid4().hex[:8],
            **extra,
        }
        self._token: Optional[Token[Dict[str, Any]]] = None

    def __enter__(self) -> LogContext:
        self._token = _request_context.set(self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            _request_context.reset(self._token)

    async def __aenter__(self) -> LogContext:
        return self.__enter__()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.__exit__(exc_type, exc_val, exc_tb)


def get_log_context() -> Dict[str, Any]:
    return dict(_request_context.get({}))
