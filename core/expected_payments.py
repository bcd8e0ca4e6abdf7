"""
expected_payments.py
---------------------
Upcoming dividend projections built from detected patterns.

Two views:
    - generate_expected_dividends(): next expected payment per holding
      that falls inside a look-ahead window.
    - generate_expected_dividend_calendar(): the next N occurrences for
      every holding with a classified frequency.

calculate_pattern_statistics() rolls the stored patterns up into the
portfolio summary printed by the CLI.

Franking credits are estimated from the holding's historical average
franking percentage and the company tax rate in config.yaml.
"""

from datetime import date, datetime
from typing import Iterable, List

import numpy as np
import pandas as pd

from config.config_loader import get_expected_payments_config
from core.models import FREQUENCY_MONTHS, ExpectedDividend, Frequency, Pattern, PatternConfidence, PatternSummary


def estimate_franking_credits(amount: float, franking_percentage: float) -> float:
    """Franking credit attached to a cash dividend at the company tax rate."""
    rate = get_expected_payments_config()["company_tax_rate"]
    return round(amount * (franking_percentage / 100) * rate / (1 - rate), 2)


def _expected(pattern: Pattern, when: date, confidence: PatternConfidence, today: date) -> ExpectedDividend:
    amount = (
        pattern.next_expected_payment.estimated_amount
        if pattern.next_expected_payment and pattern.next_expected_payment.estimated_date == when
        else pattern.statistics.average_amount
    )
    franking_pct = pattern.statistics.average_franking_percentage
    return ExpectedDividend(
        holding_id=pattern.holding_id,
        company_name=pattern.company_name,
        asx_code=pattern.asx_code,
        estimated_payment_date=when,
        estimated_amount=amount,
        estimated_franking_credits=estimate_franking_credits(amount, franking_pct),
        estimated_franking_percentage=franking_pct,
        confidence=confidence,
        frequency=pattern.frequency,
        last_payment_date=pattern.date_range.end,
        average_amount=pattern.statistics.average_amount,
        payments_count=pattern.payments_analyzed,
        days_until=(when - today).days,
    )


def generate_expected_dividends(
    patterns: Iterable[Pattern],
    now: datetime,
    look_ahead_days: int | None = None,
) -> List[ExpectedDividend]:
    """
    Next expected payments dated between today and today + look_ahead_days,
    sorted by date.
    """
    if look_ahead_days is None:
        look_ahead_days = get_expected_payments_config()["look_ahead_days"]

    today = now.date()
    horizon = (pd.Timestamp(today) + pd.Timedelta(days=look_ahead_days)).date()

    expected = []
    for pattern in patterns:
        nxt = pattern.next_expected_payment
        if nxt is None:
            continue
        if today <= nxt.estimated_date <= horizon:
            expected.append(_expected(pattern, nxt.estimated_date, nxt.confidence, today))

    return sorted(expected, key=lambda e: e.estimated_payment_date)


def generate_expected_dividend_calendar(
    patterns: Iterable[Pattern],
    now: datetime,
    occurrences: int | None = None,
) -> List[ExpectedDividend]:
    """
    Forward calendar of the next `occurrences` payments per classified holding.
    Only the first occurrence keeps the pattern's confidence.
    """
    if occurrences is None:
        occurrences = get_expected_payments_config()["calendar_occurrences"]

    today = now.date()
    expected = []
    for pattern in patterns:
        months = FREQUENCY_MONTHS.get(pattern.frequency)
        if months is None:
            continue

        last = pd.Timestamp(pattern.date_range.end)
        for i in range(1, occurrences + 1):
            when = (last + pd.DateOffset(months=months * i)).date()
            confidence = pattern.confidence if i == 1 else PatternConfidence.LOW
            expected.append(_expected(pattern, when, confidence, today))

    return sorted(expected, key=lambda e: e.estimated_payment_date)


# =============================================================================
# PORTFOLIO SUMMARY
# =============================================================================

def calculate_pattern_statistics(
    patterns: Iterable[Pattern],
    now: datetime,
    look_ahead_days: int | None = None,
) -> PatternSummary:
    """
    Counts by frequency and confidence, the mean confidence score, and how
    many holdings have their next payment due inside the look-ahead window.
    """
    if look_ahead_days is None:
        look_ahead_days = get_expected_payments_config()["look_ahead_days"]

    patterns = list(patterns)
    by_frequency = {f: 0 for f in Frequency}
    by_confidence = {c: 0 for c in PatternConfidence}
    for pattern in patterns:
        by_frequency[pattern.frequency] += 1
        by_confidence[pattern.confidence] += 1

    scores = [p.confidence_score for p in patterns]
    average = int(round(float(np.mean(scores)))) if scores else 0

    return PatternSummary(
        total_holdings=len(patterns),
        by_frequency=by_frequency,
        by_confidence=by_confidence,
        average_confidence=average,
        upcoming_payments_count=len(generate_expected_dividends(patterns, now, look_ahead_days)),
    )
