"""
seasonality.py
---------------
Calendar-month recurrence across a payment history.

Australian companies tend to pay in the same months every year
(e.g. Mar/Sep for half-yearly payers), so the set of recurring months is
both a display label and an input to confidence scoring.
"""

import calendar
from collections import Counter
from typing import Optional, Sequence

import numpy as np

from core.models import PaymentRecord, SeasonalPattern


def detect_seasonal_pattern(payments: Sequence[PaymentRecord]) -> Optional[SeasonalPattern]:
    """
    Months that appear at least twice across the history.

    Returns:
        SeasonalPattern with sorted months and a label like "Mar/Jun/Sep/Dec",
        or None when no month recurs.
    """
    if len(payments) < 2:
        return None

    counts = Counter(p.date_received.month for p in payments)
    recurring = sorted(month for month, count in counts.items() if count >= 2)
    if not recurring:
        return None

    description = "/".join(calendar.month_abbr[m] for m in recurring)
    return SeasonalPattern(months=recurring, description=description)


def seasonal_consistency(payments: Sequence[PaymentRecord]) -> float:
    """
    Month-histogram score, 0-1: one minus the distance of the histogram
    from a uniform spread, relative to the payment count. Payments bunched
    into a single month score close to 0.
    Needs at least 4 payments; returns 0 otherwise.
    """
    total = len(payments)
    if total < 4:
        return 0.0

    counts = np.zeros(12)
    for p in payments:
        counts[p.date_received.month - 1] += 1

    expected_per_month = total / 12
    spread = np.sqrt(np.sum((counts - expected_per_month) ** 2))
    return float(1 - spread / total)
