"""
Reporting aggregation domain models.

Pin values reported by devices are averaged per time bucket before they are
persisted. A bucket is identified by ``AggregationKey`` (whose ``ts`` is the
bucket index, i.e. ``epoch_millis // period_millis``) and accumulated in an
``AggregationValue``.

Usage
-----
>>> key = AggregationKey.for_sample("a@b.c", 1, "v", 4, ts_millis, GraphType.MINUTE)
>>> aggregations.setdefault(key, AggregationValue()).update(42.0)
>>> manager.insert_reporting(aggregations, GraphType.MINUTE)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum


class GraphType(Enum):
    """Granularity of a reporting bucket and the table it is stored in."""

    MINUTE = ("minute", 60_000)
    HOURLY = ("hourly", 3_600_000)
    DAILY = ("daily", 86_400_000)

    def __init__(self, label: str, period_millis: int) -> None:
        self.label = label
        self.period_millis = period_millis

    @property
    def table_name(self) -> str:
        return f"reporting_average_{self.label}"

    def bucket_of(self, ts_millis: int) -> int:
        return ts_millis // self.period_millis


@dataclass(frozen=True)
class AggregationKey:
    username: str
    dash_id: int
    pin_type: str
    pin: int
    ts: int

    @classmethod
    def for_sample(
        cls,
        username: str,
        dash_id: int,
        pin_type: str,
        pin: int,
        ts_millis: int,
        graph_type: GraphType,
    ) -> AggregationKey:
        return cls(username, dash_id, pin_type, pin, graph_type.bucket_of(ts_millis))

    def bucket_start(self, graph_type: GraphType) -> datetime:
        """Start of this bucket as an aware UTC datetime."""
        millis = self.ts * graph_type.period_millis
        return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)


class AggregationValue:
    """Running sum/count of the samples that fell into one bucket."""

    __slots__ = ("sum", "count")

    def __init__(self, value: float | None = None) -> None:
        self.sum = 0.0
        self.count = 0
        if value is not None:
            self.update(value)

    def update(self, value: float) -> None:
        self.sum += value
        self.count += 1

    def average(self) -> float:
        if self.count == 0:
            return 0.0
        return self.sum / self.count

    def __repr__(self) -> str:
        return f"AggregationValue(sum={self.sum!r}, count={self.count!r})"
