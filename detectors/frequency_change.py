"""
frequency_change.py
--------------------
Detects a company changing its dividend schedule.

The holding's history is split at the midpoint into "previous" and
"recent" halves. Each half's mean interval is mapped to a frequency; a
change is reported when the two differ and are not in the same similarity
group (quarterly vs half-yearly is treated as noise, not a change).
"""

from datetime import datetime
from typing import List, Sequence

import numpy as np

from core.models import (
    AlertSettings,
    Frequency,
    FrequencyChangeDetection,
    FrequencyChangeEvidence,
    Pattern,
    PatternConfidence,
    PaymentRecord,
)
from detectors.base_detector import BaseDetector

MIN_PAYMENTS = 4


class FrequencyChangeDetector(BaseDetector):
    """
    Usage:
        detector = FrequencyChangeDetector()
        changes = detector.detect(patterns, payments, settings, now)
    """

    def detect(
        self,
        patterns: Sequence[Pattern],
        payments: Sequence[PaymentRecord],
        settings: AlertSettings,
        now: datetime,
    ) -> List[FrequencyChangeDetection]:
        if not settings.detect_frequency_changes:
            return []

        changes: List[FrequencyChangeDetection] = []

        for pattern in patterns:
            if pattern.payments_analyzed < MIN_PAYMENTS:
                continue

            holding_payments = self._payments_for(pattern, payments)
            if len(holding_payments) < MIN_PAYMENTS:
                continue

            split = len(holding_payments) // 2
            previous_intervals = self._intervals(holding_payments[:split])
            recent_intervals = self._intervals(holding_payments[split:])
            if not previous_intervals or not recent_intervals:
                continue

            previous_average = float(np.mean(previous_intervals))
            recent_average = float(np.mean(recent_intervals))
            previous_frequency = self.interval_to_frequency(previous_average)
            current_frequency = self.interval_to_frequency(recent_average)

            if self.is_similar_frequency(previous_frequency, current_frequency):
                continue

            changes.append(FrequencyChangeDetection(
                holding_id=pattern.holding_id,
                company_name=pattern.company_name,
                asx_code=pattern.asx_code,
                previous_frequency=previous_frequency,
                current_frequency=current_frequency,
                detected_at=now,
                evidence=FrequencyChangeEvidence(
                    recent_intervals=recent_intervals,
                    previous_intervals=previous_intervals,
                    recent_average=recent_average,
                    previous_average=previous_average,
                ),
                confidence=self._change_confidence(recent_intervals),
                reason=(
                    f"Payment interval changed from {round(previous_average)} "
                    f"to {round(recent_average)} days"
                ),
            ))

        return changes

    # -------------------------------------------------------------------------
    # HELPERS
    # -------------------------------------------------------------------------

    def interval_to_frequency(self, interval: float) -> Frequency:
        """Half-split classifier: anything past the last cut-off is yearly."""
        for name, limit in self.config["half_split_cutoffs"].items():
            if interval < limit:
                return Frequency(name)
        return Frequency.YEARLY

    def is_similar_frequency(self, a: Frequency, b: Frequency) -> bool:
        if a == b:
            return True
        for group in self.config["similar_frequency_groups"]:
            if a.value in group and b.value in group:
                return True
        return False

    def _change_confidence(self, recent_intervals: List[int]) -> PatternConfidence:
        cutoffs = self.config["change_confidence_cv"]
        cv = self._cv(recent_intervals)
        if cv < cutoffs["high"]:
            return PatternConfidence.HIGH
        if cv < cutoffs["medium"]:
            return PatternConfidence.MEDIUM
        return PatternConfidence.LOW


def detect_frequency_changes(
    patterns: Sequence[Pattern],
    payments: Sequence[PaymentRecord],
    settings: AlertSettings | None = None,
    now: datetime | None = None,
) -> List[FrequencyChangeDetection]:
    """Module-level shortcut. Settings default to config; now to the current time."""
    return FrequencyChangeDetector().detect(
        patterns, payments, settings or AlertSettings.from_config(), now or datetime.now()
    )
