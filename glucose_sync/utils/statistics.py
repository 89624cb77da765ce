"""Summary statistics over glucose readings (all values in mmol/L)."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum

from ..sync.models import Reading, now_millis

_DAY_MS = 24 * 60 * 60 * 1000


class TimeRange(Enum):
    DAY_1 = ("24 Hours", 1)
    DAYS_7 = ("7 Days", 7)
    DAYS_30 = ("30 Days", 30)
    DAYS_90 = ("90 Days", 90)
    YEAR_1 = ("1 Year", 365)

    def __init__(self, label: str, days: int) -> None:
        self.label = label
        self.days = days

    def start_millis(self, now: int | None = None) -> int:
        return (now if now is not None else now_millis()) - self.days * _DAY_MS


@dataclass
class TimeInRange:
    very_low: int
    low: int
    in_range: int
    high: int
    very_high: int

    @property
    def total(self) -> int:
        return self.very_low + self.low + self.in_range + self.high + self.very_high

    def percent(self, bucket: str) -> float:
        return getattr(self, bucket) / self.total * 100 if self.total else 0.0


@dataclass
class GlucoseStatistics:
    count: int
    average: float
    minimum: float
    maximum: float
    standard_deviation: float
    coefficient_of_variation: float
    time_in_range: TimeInRange
    estimated_a1c: float


def filter_by_time_range(readings: list[Reading], time_range: TimeRange, now: int | None = None) -> list[Reading]:
    start = time_range.start_millis(now)
    return [r for r in readings if r.timestamp >= start]


def _time_in_range(values: list[float]) -> TimeInRange:
    """Bucket values: <3.0, 3.0-3.9, 3.9-10.0, 10.0-13.9, >=13.9 mmol/L."""
    buckets = {"very_low": 0, "low": 0, "in_range": 0, "high": 0, "very_high": 0}
    for v in values:
        if v < 3.0:
            buckets["very_low"] += 1
        elif v < 3.9:
            buckets["low"] += 1
        elif v <= 10.0:
            buckets["in_range"] += 1
        elif v < 13.9:
            buckets["high"] += 1
        else:
            buckets["very_high"] += 1
    return TimeInRange(**buckets)


def calculate_statistics(readings: list[Reading]) -> GlucoseStatistics | None:
    """Compute summary statistics, or None for an empty list.

    mg/dL readings are converted to mmol/L first. The A1C estimate uses the
    ADAG formula ``(average + 2.59) / 1.59``.
    """
    if not readings:
        return None

    values = [r.value_mmol for r in readings]
    count = len(values)
    average = sum(values) / count
    variance = sum((v - average) ** 2 for v in values) / count
    std_dev = math.sqrt(variance)

    return GlucoseStatistics(
        count=count,
        average=average,
        minimum=min(values),
        maximum=max(values),
        standard_deviation=std_dev,
        coefficient_of_variation=(std_dev / average * 100) if average > 0 else 0.0,
        time_in_range=_time_in_range(values),
        estimated_a1c=(average + 2.59) / 1.59,
    )
