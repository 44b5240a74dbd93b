"""
UserRecord - persisted copy of a user profile.

Rows are keyed by ``(email, app_name)`` and overwritten wholesale on every
save; the ``json`` column carries the profile payload as-is.
"""

from __future__ import annotations

from typing import Any, Dict

from sqlalchemy import JSON, BigInteger, Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from iot_persistence.database.base import Base


class UserRecord(Base):
    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), primary_key=True)
    app_name: Mapped[str] = mapped_column(String(255), primary_key=True)

    region: Mapped[str] = mapped_column(String(64), nullable=False, default="local")
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    energy: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_facebook_user: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    is_super_admin: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    last_modified_ts: Mapped[int] = mapped_column(BigInteger, nullable=False)
    json: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
