"""
iot_persistence - asynchronous persistence façade for an IoT server backend.

>>> from iot_persistence import PersistenceManager, BackgroundExecutor
"""

from iot_persistence.core.background.executor import BackgroundExecutor
from iot_persistence.core.exceptions import (
    DataIntegrityError,
    DatabaseError,
    PersistenceClosedError,
    PersistenceDisabledError,
    PersistenceException,
)
from iot_persistence.core.logging import setup_logging, shutdown_logging
from iot_persistence.database.manager import PersistenceManager
from iot_persistence.domain.models import (
    AggregationKey,
    AggregationValue,
    GraphType,
    Redeem,
    User,
)

__version__ = "0.1.0"

__all__ = [
    "PersistenceManager",
    "BackgroundExecutor",
    "PersistenceException",
    "DatabaseError",
    "DataIntegrityError",
    "PersistenceDisabledError",
    "PersistenceClosedError",
    "Redeem",
    "User",
    "GraphType",
    "AggregationKey",
    "AggregationValue",
    "setup_logging",
    "shutdown_logging",
]
