"""
pattern_changes.py
-------------------
Sliding-window regime-shift detection over the interval series.

At each position the mean of the preceding window is compared with the
mean of the following window. A shift is reported only when the means
differ by more than the configured ratio AND the two windows land in
different coarse frequency buckets.
"""

from datetime import datetime
from typing import List, Sequence

import numpy as np

from config.config_loader import get_pattern_detection_config
from core.frequency_classifier import classify_interval
from core.models import PatternChange, PaymentRecord


def detect_pattern_changes(
    payments: Sequence[PaymentRecord],
    intervals: Sequence[int],
    now: datetime,
) -> List[PatternChange]:
    """
    Args:
        payments: Payments sorted ascending by date.
        intervals: Day-gaps between those payments.
        now: Detection timestamp stamped on every change.

    Returns:
        PatternChange records in history order.
    """
    cfg = get_pattern_detection_config()
    window = cfg["change_window_size"]
    changes: List[PatternChange] = []

    if len(intervals) < window:
        return changes

    for i in range(window, len(intervals) - window):
        before = float(np.mean(intervals[i - window:i]))
        after = float(np.mean(intervals[i:i + window]))
        if before <= 0:
            continue

        if abs(after - before) / before <= cfg["change_ratio_threshold"]:
            continue

        from_freq = classify_interval(before)
        to_freq = classify_interval(after)
        if from_freq == to_freq:
            continue

        changes.append(PatternChange(
            id=f"change-{i}",
            change_date=payments[i + 1].date_received,
            from_frequency=from_freq,
            to_frequency=to_freq,
            reason=f"Interval changed from {round(before)} to {round(after)} days",
            detected_at=now,
        ))

    return changes
