"""
ORM records for the persistence schema.

Importing this package registers every table on ``Base.metadata``.
"""

from iot_persistence.database.base import Base
from iot_persistence.database.models.redeem import RedeemRecord
from iot_persistence.database.models.reporting import (
    REPORTING_RECORDS,
    ReportingAverageDaily,
    ReportingAverageHourly,
    ReportingAverageMinute,
)
from iot_persistence.database.models.user import UserRecord

__all__ = [
    "Base",
    "UserRecord",
    "RedeemRecord",
    "ReportingAverageMinute",
    "ReportingAverageHourly",
    "ReportingAverageDaily",
    "REPORTING_RECORDS",
]
