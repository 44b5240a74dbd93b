"""
UserDao - batch upsert of user profiles into ``users``.
"""

from __future__ import annotations

import time
from typing import Any, Dict, Iterable, List

from iot_persistence.core.logging.logger import get_logger
from iot_persistence.database.dao.base import BaseDao
from iot_persistence.database.models.user import UserRecord
from iot_persistence.domain.models.user import User

logger = get_logger(__name__)

_KEY_COLUMNS = ("email", "app_name")


def _to_row(user: User) -> Dict[str, Any]:
    return {
        "email": user.email,
        "app_name": user.app_name,
        "region": user.region,
        "name": user.name,
        "energy": user.energy,
        "is_facebook_user": user.is_facebook_user,
        "is_super_admin": user.is_super_admin,
        "last_modified_ts": user.last_modified_ts,
        "json": dict(user.profile),
    }


class UserDao(BaseDao):
    async def save(self, users: Iterable[User]) -> int:
        """
        Insert or overwrite every user in one transaction.

        Users repeated within the batch collapse to the last occurrence.

        Returns
        -------
        int
            Number of distinct users written.
        """
        by_identity: Dict[tuple, Dict[str, Any]] = {}
        for user in users:
            by_identity[user.identity] = _to_row(user)
        rows: List[Dict[str, Any]] = list(by_identity.values())
        if not rows:
            return 0

        start = time.monotonic()
        stmt = self._upsert(
            UserRecord,
            _KEY_COLUMNS,
            self._non_key_columns(rows, _KEY_COLUMNS),
        )
        async with self._transaction("UserDao.save", count=len(rows)) as conn:
            await conn.execute(stmt, rows)

        latency_ms = self._record_success("UserDao.save", start, rows=len(rows))
        logger.debug(
            "Users saved",
            extra={"count": len(rows), "latency_ms": latency_ms},
        )
        return len(rows)
