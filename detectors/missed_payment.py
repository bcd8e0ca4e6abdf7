"""
missed_payment.py
------------------
Flags expected dividends that have not arrived.

For every pattern with a prediction, the detector checks whether any
payment on or after the expected date exists. If not, and "now" is past
the expected date, a PatternDeviation is reported with:
    - days overdue (whole days, floored)
    - a suggested action that escalates with lateness
    - historical reliability: how often past intervals landed within
      tolerance of the frequency's canonical interval
"""

import math
from datetime import datetime
from typing import List, Sequence

from core.models import (
    AlertSettings,
    Pattern,
    PatternConfidence,
    PatternDeviation,
    PaymentRecord,
    SuggestedAction,
)
from detectors.base_detector import BaseDetector

SECONDS_PER_DAY = 86400


class MissedPaymentDetector(BaseDetector):
    """
    Usage:
        detector = MissedPaymentDetector()
        deviations = detector.detect(patterns, payments, settings, now)
    """

    def detect(
        self,
        patterns: Sequence[Pattern],
        payments: Sequence[PaymentRecord],
        settings: AlertSettings,
        now: datetime,
    ) -> List[PatternDeviation]:
        """Returns deviations sorted by days overdue, most overdue first."""
        deviations: List[PatternDeviation] = []

        for pattern in patterns:
            # Uncertain patterns only alert when explicitly enabled
            if pattern.confidence == PatternConfidence.UNCERTAIN and not settings.alert_on_low_confidence:
                continue

            expected = pattern.next_expected_payment
            if expected is None:
                continue

            holding_payments = self._payments_for(pattern, payments)
            if any(p.date_received >= expected.estimated_date for p in holding_payments):
                continue

            expected_at = datetime.combine(expected.estimated_date, datetime.min.time(), tzinfo=now.tzinfo)
            if now <= expected_at:
                continue

            days_overdue = math.floor((now - expected_at).total_seconds() / SECONDS_PER_DAY)

            deviations.append(PatternDeviation(
                holding_id=pattern.holding_id,
                company_name=pattern.company_name,
                asx_code=pattern.asx_code,
                pattern_id=pattern.holding_id,
                expected_date=expected.estimated_date,
                expected_amount=expected.estimated_amount,
                days_overdue=days_overdue,
                confidence=expected.confidence,
                last_payment_date=pattern.date_range.end,
                suggested_action=self._suggested_action(days_overdue),
                historical_reliability=self._historical_reliability(pattern, holding_payments),
            ))

        return sorted(deviations, key=lambda d: d.days_overdue, reverse=True)

    # -------------------------------------------------------------------------
    # INTERNAL
    # -------------------------------------------------------------------------

    def _suggested_action(self, days_overdue: int) -> SuggestedAction:
        if days_overdue > self.config["contact_company_after_days"]:
            return SuggestedAction.CONTACT_COMPANY
        if days_overdue > self.config["investigate_after_days"]:
            return SuggestedAction.INVESTIGATE
        return SuggestedAction.WAIT

    def _historical_reliability(self, pattern: Pattern, payments: Sequence[PaymentRecord]) -> float:
        """
        Share of past intervals within +/- tolerance of the canonical interval.
        Returns the configured default when there is too little history.
        """
        default = self.config["reliability_default"]
        if len(payments) < 2:
            return default

        intervals = self._intervals(payments)
        if not intervals:
            return default

        expected_interval = self._canonical_interval(pattern.frequency)
        tolerance = expected_interval * self.config["reliability_tolerance"]
        on_time = sum(1 for i in intervals if abs(i - expected_interval) <= tolerance)
        return on_time / len(intervals)


def detect_pattern_deviations(
    patterns: Sequence[Pattern],
    payments: Sequence[PaymentRecord],
    settings: AlertSettings | None = None,
    now: datetime | None = None,
) -> List[PatternDeviation]:
    """Module-level shortcut. Settings default to config; now to the current time."""
    return MissedPaymentDetector().detect(
        patterns, payments, settings or AlertSettings.from_config(), now or datetime.now()
    )
