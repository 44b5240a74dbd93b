"""
StatementDao - ad-hoc SQL issued by operators and maintenance jobs.
"""

from __future__ import annotations

import time

from sqlalchemy import text

from iot_persistence.core.logging.logger import get_logger
from iot_persistence.database.dao.base import BaseDao

logger = get_logger(__name__)


class StatementDao(BaseDao):
    async def execute(self, sql: str) -> int:
        """
        Execute ``sql`` in its own transaction and commit it.

        Returns the driver-reported row count (-1 when not applicable).
        """
        if not sql or not sql.strip():
            raise ValueError("SQL statement must be a non-empty string")

        start = time.monotonic()
        async with self._transaction("StatementDao.execute", sql=sql) as conn:
            result = await conn.execute(text(sql))

        latency_ms = self._record_success("StatementDao.execute", start)
        logger.info(
            "SQL statement executed",
            extra={"sql": sql, "rowcount": result.rowcount, "latency_ms": latency_ms},
        )
        return result.rowcount
