"""
Reporting average tables, one per graph granularity.

All three share a layout: one averaged value per
``(username, project_id, pin, pin_type, ts)`` bucket, where ``ts`` is the
bucket start in UTC.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Type

from sqlalchemy import DateTime, Float, Integer, SmallInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from iot_persistence.database.base import Base
from iot_persistence.domain.models.reporting import GraphType


class ReportingAverageMixin:
    username: Mapped[str] = mapped_column(String(255), primary_key=True)
    project_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    pin: Mapped[int] = mapped_column(SmallInteger, primary_key=True)
    pin_type: Mapped[str] = mapped_column(String(1), primary_key=True)
    ts: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), primary_key=True, index=True
    )
    value: Mapped[float] = mapped_column(Float, nullable=False)


class ReportingAverageMinute(ReportingAverageMixin, Base):
    __tablename__ = GraphType.MINUTE.table_name


class ReportingAverageHourly(ReportingAverageMixin, Base):
    __tablename__ = GraphType.HOURLY.table_name


class ReportingAverageDaily(ReportingAverageMixin, Base):
    __tablename__ = GraphType.DAILY.table_name


REPORTING_RECORDS: Dict[GraphType, Type[ReportingAverageMixin]] = {
    GraphType.MINUTE: ReportingAverageMinute,
    GraphType.HOURLY: ReportingAverageHourly,
    GraphType.DAILY: ReportingAverageDaily,
}
