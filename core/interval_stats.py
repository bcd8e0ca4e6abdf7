"""
interval_stats.py
------------------
Inter-payment gap analysis.

Every downstream component (frequency classification, confidence scoring,
change detection, reliability) works off the same list of day-gaps, so the
gap calculation lives in exactly one place.
"""

from dataclasses import dataclass, field
from typing import Iterable, List, Sequence

import numpy as np

from core.models import PaymentRecord


@dataclass
class IntervalStatistics:
    """Summary of the gaps between consecutive payments (days)."""
    intervals: List[int] = field(default_factory=list)
    mean: float = 0.0
    std_dev: float = 0.0             # Population stddev
    variance: float = 0.0
    min: int = 0
    max: int = 0
    coefficient_of_variation: float = 0.0

    @property
    def count(self) -> int:
        return len(self.intervals)


def sort_payments(payments: Iterable[PaymentRecord]) -> List[PaymentRecord]:
    """Sorts payments ascending by date. Input order is never trusted."""
    return sorted(payments, key=lambda p: p.date_received)


def compute_intervals(payments: Sequence[PaymentRecord]) -> List[int]:
    """
    Day-gaps between consecutive payments. Payments must already be sorted.
    Zero or one payment gives an empty list.
    """
    if len(payments) < 2:
        return []
    ordinals = np.array([p.date_received.toordinal() for p in payments], dtype=np.int64)
    return [int(d) for d in np.diff(ordinals)]


def summarize_intervals(intervals: Sequence[float]) -> IntervalStatistics:
    """Mean, population stddev, min, max and CV of an interval series."""
    if len(intervals) == 0:
        return IntervalStatistics()

    arr = np.asarray(intervals, dtype=float)
    mean = float(np.mean(arr))
    variance = float(np.var(arr))
    std_dev = float(np.sqrt(variance))
    cv = std_dev / mean if mean > 0 else 0.0

    return IntervalStatistics(
        intervals=[int(i) for i in intervals],
        mean=mean,
        std_dev=std_dev,
        variance=variance,
        min=int(np.min(arr)),
        max=int(np.max(arr)),
        coefficient_of_variation=cv,
    )


def interval_statistics(payments: Iterable[PaymentRecord]) -> IntervalStatistics:
    """Sorts the payments and summarizes their gaps."""
    return summarize_intervals(compute_intervals(sort_payments(payments)))
