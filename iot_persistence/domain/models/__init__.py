"""
Domain models passed through the persistence façade.

These are plain value objects; their on-store representation lives in
``iot_persistence.database.models``.
"""

from iot_persistence.domain.models.redeem import Redeem
from iot_persistence.domain.models.reporting import (
    AggregationKey,
    AggregationValue,
    GraphType,
)
from iot_persistence.domain.models.user import User

__all__ = [
    "Redeem",
    "User",
    "GraphType",
    "AggregationKey",
    "AggregationValue",
]
