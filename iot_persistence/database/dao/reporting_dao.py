"""
ReportingDao - averaged pin values per time bucket.

Writes go to ``reporting_average_minute``, ``reporting_average_hourly`` or
``reporting_average_daily`` depending on the GraphType. Retention cleanup
trims the minute and hourly tables; daily rows are kept.
"""

from __future__ import annotations

import time
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping

from sqlalchemy import delete

from iot_persistence.core.config.config import Config
from iot_persistence.core.logging.logger import get_logger
from iot_persistence.database.dao.base import BaseDao
from iot_persistence.database.models.reporting import (
    REPORTING_RECORDS,
    ReportingAverageHourly,
    ReportingAverageMinute,
)
from iot_persistence.domain.models.reporting import (
    AggregationKey,
    AggregationValue,
    GraphType,
)

logger = get_logger(__name__)

_KEY_COLUMNS = ("username", "project_id", "pin", "pin_type", "ts")


class ReportingDao(BaseDao):
    async def insert(
        self,
        aggregations: Mapping[AggregationKey, AggregationValue],
        graph_type: GraphType,
    ) -> int:
        """
        Store the average of each bucket, overwriting an existing bucket row.

        Returns
        -------
        int
            Number of bucket rows written.
        """
        rows: List[Dict[str, Any]] = [
            {
                "username": key.username,
                "project_id": key.dash_id,
                "pin": key.pin,
                "pin_type": key.pin_type,
                "ts": key.bucket_start(graph_type),
                "value": value.average(),
            }
            for key, value in aggregations.items()
        ]
        if not rows:
            return 0

        operation = f"ReportingDao.insert[{graph_type.label}]"
        start = time.monotonic()
        stmt = self._upsert(REPORTING_RECORDS[graph_type], _KEY_COLUMNS, ["value"])
        async with self._transaction(operation, count=len(rows)) as conn:
            await conn.execute(stmt, rows)

        latency_ms = self._record_success(operation, start, rows=len(rows))
        logger.debug(
            "Reporting averages stored",
            extra={
                "table": graph_type.table_name,
                "count": len(rows),
                "latency_ms": latency_ms,
            },
        )
        return len(rows)

    async def clean_old_reporting_records(self, now: datetime) -> Dict[str, int]:
        """
        Delete minute and hourly rows older than their retention windows.

        Parameters
        ----------
        now : datetime
            Reference instant; must be timezone-aware.

        Returns
        -------
        Dict[str, int]
            Rows removed per table name.
        """
        if now.tzinfo is None:
            raise ValueError("clean_old_reporting_records requires an aware datetime")

        minute_cutoff = now - timedelta(minutes=Config.REPORTING_MINUTE_RETENTION_MINUTES)
        hourly_cutoff = now - timedelta(hours=Config.REPORTING_HOURLY_RETENTION_HOURS)

        start = time.monotonic()
        async with self._transaction(
            "ReportingDao.clean_old_reporting_records",
            minute_cutoff=minute_cutoff.isoformat(),
            hourly_cutoff=hourly_cutoff.isoformat(),
        ) as conn:
            minute_result = await conn.execute(
                delete(ReportingAverageMinute).where(
                    ReportingAverageMinute.ts < minute_cutoff
                )
            )
            hourly_result = await conn.execute(
                delete(ReportingAverageHourly).where(
                    ReportingAverageHourly.ts < hourly_cutoff
                )
            )

        removed = {
            GraphType.MINUTE.table_name: max(minute_result.rowcount, 0),
            GraphType.HOURLY.table_name: max(hourly_result.rowcount, 0),
        }
        latency_ms = self._record_success(
            "ReportingDao.clean_old_reporting_records",
            start,
            rows=sum(removed.values()),
        )
        logger.info(
            "Old reporting records removed",
            extra={"removed": removed, "latency_ms": latency_ms},
        )
        return removed
