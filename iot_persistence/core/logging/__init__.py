"""
Logging Infrastructure

Exports the package-scoped logging setup and the log context helpers.
"""

from iot_persistence.core.logging.logger import (
    PACKAGE_LOGGER,
    LogContext,
    get_log_context,
    get_logger,
    is_logging_configured,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    "PACKAGE_LOGGER",
    "setup_logging",
    "shutdown_logging",
    "is_logging_configured",
    "get_logger",
    "LogContext",
    "get_log_context",
]
