"""
RedeemDao - promotional token lookups and the single-winner redeem update.

Redeeming is a conditional UPDATE guarded by ``is_redeemed = false``; the
store serializes concurrent attempts on the row, so at most one of them
affects a row and wins.
"""

from __future__ import annotations

import time
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import insert, select, update

from iot_persistence.core.logging.logger import get_logger
from iot_persistence.database.base import utc_now
from iot_persistence.database.dao.base import BaseDao
from iot_persistence.database.models.redeem import RedeemRecord
from iot_persistence.domain.models.redeem import Redeem

logger = get_logger(__name__)


def _to_domain(record: Any) -> Redeem:
    return Redeem(
        token=record.token,
        company=record.company,
        reward=record.reward,
        is_redeemed=bool(record.is_redeemed),
        username=record.username,
        version=record.version,
    )


class RedeemDao(BaseDao):
    async def select_by_token(self, token: str) -> Optional[Redeem]:
        start = time.monotonic()
        stmt = select(
            RedeemRecord.token,
            RedeemRecord.company,
            RedeemRecord.reward,
            RedeemRecord.is_redeemed,
            RedeemRecord.username,
            RedeemRecord.version,
        ).where(RedeemRecord.token == token)

        async with self._transaction("RedeemDao.select_by_token", token=token) as conn:
            row = (await conn.execute(stmt)).one_or_none()

        self._record_success(
            "RedeemDao.select_by_token", start, rows=0 if row is None else 1
        )
        return None if row is None else _to_domain(row)

    async def update(self, username: str, token: str) -> bool:
        """
        Mark ``token`` redeemed by ``username`` if nobody redeemed it yet.

        Returns
        -------
        bool
            True when exactly one row was updated. False when the token is
            unknown or already redeemed.

        Raises
        ------
        ValueError
            If ``username`` is empty; a redeemed token must name its owner.
        """
        if not username or not username.strip():
            raise ValueError("Redeeming a token requires a non-empty username")

        start = time.monotonic()
        stmt = (
            update(RedeemRecord)
            .where(RedeemRecord.token == token)
            .where(RedeemRecord.is_redeemed.is_(False))
            .values(
                is_redeemed=True,
                username=username,
                version=RedeemRecord.version + 1,
                redeemed_at=utc_now(),
            )
        )

        async with self._transaction("RedeemDao.update", token=token) as conn:
            result = await conn.execute(stmt)

        updated = result.rowcount == 1
        latency_ms = self._record_success("RedeemDao.update", start, rows=result.rowcount)
        logger.info(
            "Redeem update applied" if updated else "Redeem update rejected",
            extra={"token": token, "user_email": username, "latency_ms": latency_ms},
        )
        return updated

    async def insert_batch(self, redeems: Iterable[Redeem]) -> int:
        """
        Insert new, unredeemed tokens at version 1 in one transaction.

        Raises
        ------
        ValueError
            If any token in the batch is already redeemed or past version 1;
            nothing is written.
        DataIntegrityError
            If any token already exists; nothing from the batch is stored.
        """
        batch = list(redeems)
        used = [redeem for redeem in batch if redeem.is_redeemed or redeem.version != 1]
        if used:
            raise ValueError(
                f"insert_batch only accepts fresh tokens; {used[0].token!r} is "
                f"redeemed={used[0].is_redeemed} at version {used[0].version}"
            )

        rows: List[Dict[str, Any]] = [
            {
                "token": redeem.token,
                "company": redeem.company,
                "reward": redeem.reward,
                "is_redeemed": False,
                "username": None,
                "version": 1,
            }
            for redeem in batch
        ]
        if not rows:
            return 0

        start = time.monotonic()
        async with self._transaction("RedeemDao.insert_batch", count=len(rows)) as conn:
            await conn.execute(insert(RedeemRecord), rows)

        latency_ms = self._record_success("RedeemDao.insert_batch", start, rows=len(rows))
        logger.info(
            "Redeem tokens inserted",
            extra={"count": len(rows), "latency_ms": latency_ms},
        )
        return len(rows)
