"""
payment_anomaly.py
-------------------
Flags an unusual amount or unusual timing on the most recent payment.

The most recent payment for each holding is compared against a baseline
built from all earlier payments:
    - Amount: percent deviation from the baseline mean. Beyond the
      configured threshold it is an amount_spike or amount_drop; severity
      escalates with the size of the deviation.
    - Timing: the last gap versus the canonical interval of the holding's
      detected frequency. Beyond the threshold it is irregular_timing.
"""

from datetime import datetime
from typing import List, Sequence

import numpy as np

from core.models import (
    AlertSettings,
    AlertSeverity,
    AmountRange,
    AnomalyType,
    Pattern,
    PaymentAnomaly,
    PaymentRecord,
    SEVERITY_PRIORITY,
)
from detectors.base_detector import BaseDetector


class PaymentAnomalyDetector(BaseDetector):
    """
    Usage:
        detector = PaymentAnomalyDetector()
        anomalies = detector.detect(patterns, payments, settings, now)
    """

    def detect(
        self,
        patterns: Sequence[Pattern],
        payments: Sequence[PaymentRecord],
        settings: AlertSettings,
        now: datetime,
    ) -> List[PaymentAnomaly]:
        """Returns anomalies sorted critical, warning, info."""
        if not settings.detect_amount_anomalies and not settings.detect_timing_deviations:
            return []

        anomalies: List[PaymentAnomaly] = []

        for holding_id, holding_payments in self._group_by_holding(payments).items():
            if len(holding_payments) < self.config["min_payments_for_anomaly"]:
                continue

            most_recent = holding_payments[-1]
            historical = holding_payments[:-1]
            amounts = np.array([p.amount for p in historical], dtype=float)
            average = float(np.mean(amounts))
            std_dev = float(np.std(amounts))
            spread = std_dev * self.config["expected_range_std_multiplier"]
            expected_range = AmountRange(min=average - spread, max=average + spread)

            if settings.detect_amount_anomalies:
                anomaly = self._amount_anomaly(
                    holding_id, most_recent, historical, average, expected_range, settings
                )
                if anomaly is not None:
                    anomalies.append(anomaly)

            pattern = self._find_pattern(patterns, holding_id)
            if settings.detect_timing_deviations and pattern is not None and len(historical) >= 2:
                anomaly = self._timing_anomaly(
                    holding_id, pattern, most_recent, historical, average, expected_range, settings
                )
                if anomaly is not None:
                    anomalies.append(anomaly)

        return sorted(anomalies, key=lambda a: SEVERITY_PRIORITY[a.severity])

    # -------------------------------------------------------------------------
    # INTERNAL: AMOUNT
    # -------------------------------------------------------------------------

    def _amount_anomaly(
        self,
        holding_id: str,
        payment: PaymentRecord,
        historical: List[PaymentRecord],
        average: float,
        expected_range: AmountRange,
        settings: AlertSettings,
    ) -> PaymentAnomaly | None:
        deviation = payment.amount - average
        deviation_percent = (deviation / average) * 100 if average > 0 else 0.0
        magnitude = abs(deviation_percent)

        if magnitude <= settings.amount_anomaly_threshold:
            return None

        return PaymentAnomaly(
            holding_id=holding_id,
            company_name=payment.company_name,
            asx_code=payment.asx_code,
            payment_id=payment.id,
            payment_date=payment.date_received,
            payment_amount=payment.amount,
            anomaly_type=AnomalyType.AMOUNT_SPIKE if deviation > 0 else AnomalyType.AMOUNT_DROP,
            severity=self._amount_severity(magnitude, settings),
            average_amount=average,
            expected_range=expected_range,
            deviation_percent=deviation_percent,
            previous_payments=len(historical),
            historical_average=average,
        )

    def _amount_severity(self, magnitude: float, settings: AlertSettings) -> AlertSeverity:
        if magnitude > self.config["critical_deviation_percent"]:
            return AlertSeverity.CRITICAL
        if magnitude > self.config["warning_deviation_percent"]:
            return AlertSeverity.WARNING
        return settings.amount_anomaly_severity

    # -------------------------------------------------------------------------
    # INTERNAL: TIMING
    # -------------------------------------------------------------------------

    def _timing_anomaly(
        self,
        holding_id: str,
        pattern: Pattern,
        payment: PaymentRecord,
        historical: List[PaymentRecord],
        average: float,
        expected_range: AmountRange,
        settings: AlertSettings,
    ) -> PaymentAnomaly | None:
        expected_interval = self._canonical_interval(pattern.frequency)
        actual_interval = (payment.date_received - historical[-1].date_received).days
        days_deviation = actual_interval - expected_interval

        if abs(days_deviation) <= settings.timing_deviation_threshold_days:
            return None

        return PaymentAnomaly(
            holding_id=holding_id,
            company_name=payment.company_name,
            asx_code=payment.asx_code,
            payment_id=payment.id,
            payment_date=payment.date_received,
            payment_amount=payment.amount,
            anomaly_type=AnomalyType.IRREGULAR_TIMING,
            severity=settings.timing_deviation_severity,
            average_amount=average,
            expected_range=expected_range,
            deviation_percent=0.0,
            previous_payments=len(historical),
            historical_average=average,
            days_deviation=days_deviation,
        )


def detect_payment_anomalies(
    patterns: Sequence[Pattern],
    payments: Sequence[PaymentRecord],
    settings: AlertSettings | None = None,
    now: datetime | None = None,
) -> List[PaymentAnomaly]:
    """Module-level shortcut. Settings default to config; now to the current time."""
    return PaymentAnomalyDetector().detect(
        patterns, payments, settings or AlertSettings.from_config(), now or datetime.now()
    )
