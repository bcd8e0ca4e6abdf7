"""
pattern_detector.py
--------------------
Dividend payment pattern detection engine.

This is the foundation layer. It only answers one question per holding:

    "Given these dividend payments, how often does this company pay,
     how sure are we, and when is the next one due?"

Output: one Pattern per holding. Patterns are consumed by the alert
detectors (missed payments, frequency changes, anomalies) and by the
expected-payments planner.

Design decisions:
    - A Pattern is a pure function of (payments, now). It is rebuilt
      wholesale on every run and never patched incrementally.
    - Payments are sorted on entry; callers may pass any order.
    - "now" is injected so repeated runs over the same data are identical
      apart from analysis_date.
"""

from datetime import datetime
from typing import Iterable, List, Optional

import numpy as np

from core.frequency_classifier import classify_frequency
from core.interval_stats import IntervalStatistics, compute_intervals, sort_payments, summarize_intervals
from core.models import (
    DateRange,
    Frequency,
    Pattern,
    PatternStatistics,
    PaymentRecord,
    SeasonalPattern,
)
from core.pattern_changes import detect_pattern_changes
from core.prediction import predict_next_payment
from core.scoring import amount_trend, confidence_level, confidence_score, pattern_stability
from core.seasonality import detect_seasonal_pattern, seasonal_consistency


_DESCRIPTIONS = {
    Frequency.MONTHLY: "Monthly Payments",
    Frequency.QUARTERLY: "Quarterly Payments",
    Frequency.HALF_YEARLY: "Half-Yearly Payments",
    Frequency.YEARLY: "Annual Payments",
    Frequency.IRREGULAR: "Irregular Payments",
    Frequency.UNKNOWN: "Unknown Pattern",
}


def describe_pattern(frequency: Frequency, seasonal: Optional[SeasonalPattern]) -> str:
    """Short human-readable label, e.g. "Quarterly (Mar/Jun/Sep/Dec)"."""
    if seasonal is not None:
        return f"{frequency.label} ({seasonal.description})"
    return _DESCRIPTIONS[frequency]


class PatternDetector:
    """
    Detects the payment pattern for a single holding.

    Usage:
        detector = PatternDetector()
        pattern = detector.detect(payments, now=datetime(2025, 1, 1))
    """

    # -------------------------------------------------------------------------
    # PUBLIC INTERFACE
    # -------------------------------------------------------------------------

    def detect(self, payments: Iterable[PaymentRecord], now: datetime | None = None) -> Optional[Pattern]:
        """
        Run pattern detection on one holding's payment history.

        Args:
            payments: PaymentRecords for a single holding, any order.
            now: Analysis timestamp. Defaults to the current time.

        Returns:
            Pattern, or None if there are no payments.
        """
        ordered = sort_payments(payments)
        if not ordered:
            return None
        if now is None:
            now = datetime.now()

        intervals = compute_intervals(ordered)
        interval_stats = summarize_intervals(intervals)

        # --- Frequency & seasonality ---
        frequency, _ = classify_frequency(intervals, len(ordered))
        seasonal = detect_seasonal_pattern(ordered)

        # --- Statistics ---
        statistics = self._build_statistics(ordered, interval_stats)

        # --- Regime changes & stability ---
        changes = detect_pattern_changes(ordered, intervals, now)
        stability = pattern_stability(intervals, changes)

        # --- Confidence ---
        score = confidence_score(
            frequency,
            len(ordered),
            intervals,
            statistics.coefficient_of_variation,
            statistics.seasonal_consistency,
        )

        # --- Prediction ---
        next_payment = predict_next_payment(ordered, frequency, intervals, statistics.average_amount)

        first, last = ordered[0], ordered[-1]
        return Pattern(
            holding_id=first.holding_id,
            asx_code=first.asx_code,
            company_name=first.company_name,
            frequency=frequency,
            confidence=confidence_level(score),
            confidence_score=score,
            detected_pattern=describe_pattern(frequency, seasonal),
            seasonal_pattern=seasonal,
            analysis_date=now,
            payments_analyzed=len(ordered),
            date_range=DateRange(start=first.date_received, end=last.date_received),
            pattern_stability=stability,
            pattern_changes=changes,
            next_expected_payment=next_payment,
            statistics=statistics,
        )

    # -------------------------------------------------------------------------
    # INTERNAL: STATISTICS
    # -------------------------------------------------------------------------

    def _build_statistics(
        self, payments: List[PaymentRecord], interval_stats: IntervalStatistics
    ) -> PatternStatistics:
        """Interval and amount statistics, rounded for storage and display."""
        amounts = np.array([p.amount for p in payments], dtype=float)
        franking = np.array([p.franking_percentage for p in payments], dtype=float)
        total = float(np.sum(amounts))

        return PatternStatistics(
            average_interval=int(round(interval_stats.mean)),
            interval_std_dev=int(round(interval_stats.std_dev)),
            min_interval=interval_stats.min,
            max_interval=interval_stats.max,
            coefficient_of_variation=round(interval_stats.coefficient_of_variation, 2),
            total_amount=round(total, 2),
            average_amount=round(total / len(amounts), 2),
            amount_trend=amount_trend(amounts.tolist()),
            seasonal_consistency=round(seasonal_consistency(payments), 2),
            average_franking_percentage=round(float(np.mean(franking)), 2),
        )


def detect_pattern(payments: Iterable[PaymentRecord], now: datetime | None = None) -> Optional[Pattern]:
    """Module-level shortcut for PatternDetector().detect()."""
    return PatternDetector().detect(payments, now)
