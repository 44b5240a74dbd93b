"""
RedeemRecord - stored state of a promotional token.

Pure schema. ``version`` is bumped by the conditional redeem update so that
concurrent redeem attempts resolve to a single winner.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from iot_persistence.database.base import Base


class RedeemRecord(Base):
    __tablename__ = "redeem"
    __table_args__ = (
        CheckConstraint("reward >= 0", name="reward_non_negative"),
        CheckConstraint("version >= 1", name="version_positive"),
        CheckConstraint(
            "NOT is_redeemed OR (username IS NOT NULL AND username <> '')",
            name="redeemed_has_username",
        ),
    )

    token: Mapped[str] = mapped_column(String(255), primary_key=True)
    company: Mapped[str] = mapped_column(String(255), nullable=False)
    is_redeemed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    username: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    reward: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    redeemed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
