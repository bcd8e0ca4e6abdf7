"""
alert_generator.py
-------------------
Turns detector output into Alert entities.

Three sources, one alert each:
    1. PatternDeviation         ->  missed_payment
    2. FrequencyChangeDetection ->  frequency_change
    3. PaymentAnomaly           ->  amount_anomaly / early_payment / late_payment

Type and severity are pure functions of the detector output and the
AlertSettings passed in. Every alert carries enough detail to be rendered
without going back to the detectors.

Alert ids are deterministic: a digest of the alert type, the holding and
the key that identifies the underlying event (expected date, payment id,
frequency pair). Re-running over unchanged data yields the same ids, so an
upserting alert store does not accumulate duplicates.
"""

import hashlib
import logging
from datetime import datetime
from typing import Dict, List, Sequence

from core.models import (
    Alert,
    AlertGenerationResult,
    AlertSettings,
    AlertSeverity,
    AlertStatus,
    AlertType,
    AnomalyType,
    FrequencyChangeDetection,
    PatternDeviation,
    PaymentAnomaly,
)

logger = logging.getLogger(__name__)

# Days overdue above which a missed payment escalates
CRITICAL_OVERDUE_DAYS = 30
WARNING_OVERDUE_DAYS = 14

# Spikes smaller than this read as a bring-forward rather than a real anomaly
SPIKE_ANOMALY_PERCENT = 50


def alert_id(kind: str, holding_id: str, *keys) -> str:
    """Stable id for an alert: same inputs always give the same id."""
    raw = "|".join([kind, holding_id, *(str(k) for k in keys)])
    digest = hashlib.sha1(raw.encode("utf-8")).hexdigest()[:12]
    return f"alert-{kind}-{holding_id}-{digest}"


def format_currency(amount: float) -> str:
    return f"${amount:,.2f}"


class AlertGenerator:
    """
    Builds alerts from detector findings.

    Usage:
        generator = AlertGenerator(settings)
        result = generator.generate(deviations, changes, anomalies, now)
    """

    def __init__(self, settings: AlertSettings):
        self.settings = settings

    # -------------------------------------------------------------------------
    # PUBLIC INTERFACE
    # -------------------------------------------------------------------------

    def generate(
        self,
        deviations: Sequence[PatternDeviation],
        frequency_changes: Sequence[FrequencyChangeDetection],
        anomalies: Sequence[PaymentAnomaly],
        now: datetime,
    ) -> AlertGenerationResult:
        alerts: List[Alert] = []

        # --- 1. Missed payments ---
        alerts.extend(self._missed_payment_alert(d, now) for d in deviations)

        # --- 2. Frequency changes ---
        if self.settings.detect_frequency_changes:
            alerts.extend(self._frequency_change_alert(c) for c in frequency_changes)

        # --- 3. Payment anomalies ---
        alerts.extend(self._anomaly_alert(a, now) for a in anomalies)

        by_severity: Dict[AlertSeverity, int] = {s: 0 for s in AlertSeverity}
        for alert in alerts:
            by_severity[alert.severity] += 1

        logger.info(
            f"Generated {len(alerts)} alerts "
            f"(critical={by_severity[AlertSeverity.CRITICAL]}, "
            f"warning={by_severity[AlertSeverity.WARNING]}, "
            f"info={by_severity[AlertSeverity.INFO]})."
        )

        return AlertGenerationResult(
            alerts=alerts,
            generated_at=now,
            missed_payments=list(deviations),
            frequency_changes=list(frequency_changes),
            amount_anomalies=list(anomalies),
            total_generated=len(alerts),
            by_severity=by_severity,
        )

    # -------------------------------------------------------------------------
    # INTERNAL: MISSED PAYMENTS
    # -------------------------------------------------------------------------

    @staticmethod
    def missed_payment_severity(days_overdue: int) -> AlertSeverity:
        if days_overdue > CRITICAL_OVERDUE_DAYS:
            return AlertSeverity.CRITICAL
        if days_overdue > WARNING_OVERDUE_DAYS:
            return AlertSeverity.WARNING
        return AlertSeverity.INFO

    def _missed_payment_alert(self, deviation: PatternDeviation, now: datetime) -> Alert:
        return Alert(
            id=alert_id("missed", deviation.holding_id, deviation.expected_date.isoformat()),
            type=AlertType.MISSED_PAYMENT,
            severity=self.missed_payment_severity(deviation.days_overdue),
            status=AlertStatus.ACTIVE,
            holding_id=deviation.holding_id,
            asx_code=deviation.asx_code,
            company_name=deviation.company_name,
            title=f"{deviation.company_name}: Expected Dividend Overdue",
            message=(
                f"Expected dividend payment is {deviation.days_overdue} days overdue. "
                f"Based on historical {deviation.confidence.value} confidence pattern."
            ),
            details={
                "suggested_action": deviation.suggested_action.value,
                "historical_reliability": deviation.historical_reliability,
                "last_payment_date": deviation.last_payment_date.isoformat(),
            },
            created_at=now,
            updated_at=now,
            expected_date=deviation.expected_date,
            expected_amount=deviation.expected_amount,
            days_deviation=deviation.days_overdue,
            pattern_id=deviation.pattern_id,
        )

    # -------------------------------------------------------------------------
    # INTERNAL: FREQUENCY CHANGES
    # -------------------------------------------------------------------------

    def _frequency_change_alert(self, change: FrequencyChangeDetection) -> Alert:
        return Alert(
            id=alert_id(
                "freq", change.holding_id,
                change.previous_frequency.value, change.current_frequency.value,
            ),
            type=AlertType.FREQUENCY_CHANGE,
            severity=self.settings.frequency_change_severity,
            status=AlertStatus.ACTIVE,
            holding_id=change.holding_id,
            asx_code=change.asx_code,
            company_name=change.company_name,
            title=f"{change.company_name}: Payment Schedule Changed",
            message=(
                f"Payment frequency appears to have changed from {change.previous_frequency.value} "
                f"to {change.current_frequency.value}. {change.reason}"
            ),
            details={
                "previous_frequency": change.previous_frequency.value,
                "current_frequency": change.current_frequency.value,
                "previous_intervals": change.evidence.previous_intervals,
                "recent_intervals": change.evidence.recent_intervals,
                "confidence": change.confidence.value,
            },
            created_at=change.detected_at,
            updated_at=change.detected_at,
            pattern_id=change.holding_id,
            previous_pattern=change.previous_frequency,
            current_pattern=change.current_frequency,
        )

    # -------------------------------------------------------------------------
    # INTERNAL: ANOMALIES
    # -------------------------------------------------------------------------

    @staticmethod
    def anomaly_alert_type(anomaly: PaymentAnomaly) -> AlertType:
        if anomaly.anomaly_type == AnomalyType.AMOUNT_SPIKE:
            if anomaly.deviation_percent > SPIKE_ANOMALY_PERCENT:
                return AlertType.AMOUNT_ANOMALY
            return AlertType.EARLY_PAYMENT
        if anomaly.anomaly_type in (AnomalyType.AMOUNT_DROP, AnomalyType.UNEXPECTED_PAYMENT):
            return AlertType.AMOUNT_ANOMALY
        # Irregular timing: positive deviation means the gap ran long
        if anomaly.days_deviation > 0:
            return AlertType.LATE_PAYMENT
        return AlertType.EARLY_PAYMENT

    _TITLES = {
        AnomalyType.AMOUNT_SPIKE: "Unusually High Dividend Payment",
        AnomalyType.AMOUNT_DROP: "Unusually Low Dividend Payment",
        AnomalyType.UNEXPECTED_PAYMENT: "Unexpected Dividend Payment",
        AnomalyType.IRREGULAR_TIMING: "Irregular Payment Timing",
    }

    @staticmethod
    def anomaly_message(anomaly: PaymentAnomaly) -> str:
        percent = f"{abs(anomaly.deviation_percent):.1f}"
        if anomaly.anomaly_type == AnomalyType.AMOUNT_SPIKE:
            return (
                f"Payment of {format_currency(anomaly.payment_amount)} is {percent}% higher than "
                f"historical average of {format_currency(anomaly.historical_average)}. "
                f"This could be a special dividend or bonus payment."
            )
        if anomaly.anomaly_type == AnomalyType.AMOUNT_DROP:
            return (
                f"Payment of {format_currency(anomaly.payment_amount)} is {percent}% lower than "
                f"historical average of {format_currency(anomaly.historical_average)}. "
                f"This may indicate reduced company earnings."
            )
        if anomaly.anomaly_type == AnomalyType.UNEXPECTED_PAYMENT:
            return (
                "Unexpected dividend payment received. This payment was not predicted based on "
                "the detected payment pattern."
            )
        direction = "later" if anomaly.days_deviation > 0 else "earlier"
        return (
            f"Payment arrived {abs(anomaly.days_deviation)} days {direction} than the expected "
            f"timeframe based on historical patterns."
        )

    def _anomaly_alert(self, anomaly: PaymentAnomaly, now: datetime) -> Alert:
        return Alert(
            id=alert_id(
                "anomaly", anomaly.holding_id, anomaly.anomaly_type.value,
                anomaly.payment_id, anomaly.payment_date.isoformat(),
            ),
            type=self.anomaly_alert_type(anomaly),
            severity=anomaly.severity,
            status=AlertStatus.ACTIVE,
            holding_id=anomaly.holding_id,
            asx_code=anomaly.asx_code,
            company_name=anomaly.company_name,
            title=f"{anomaly.company_name}: {self._TITLES[anomaly.anomaly_type]}",
            message=self.anomaly_message(anomaly),
            details={
                "anomaly_type": anomaly.anomaly_type.value,
                "average_amount": anomaly.average_amount,
                "expected_range": {
                    "min": anomaly.expected_range.min,
                    "max": anomaly.expected_range.max,
                },
                "previous_payments": anomaly.previous_payments,
            },
            created_at=now,
            updated_at=now,
            actual_date=anomaly.payment_date,
            actual_amount=anomaly.payment_amount,
            days_deviation=anomaly.days_deviation or None,
            amount_deviation=anomaly.payment_amount - anomaly.historical_average,
            amount_deviation_percent=anomaly.deviation_percent,
            payment_id=anomaly.payment_id,
        )


def generate_alerts(
    deviations: Sequence[PatternDeviation],
    frequency_changes: Sequence[FrequencyChangeDetection],
    anomalies: Sequence[PaymentAnomaly],
    settings: AlertSettings | None = None,
    now: datetime | None = None,
) -> AlertGenerationResult:
    """Module-level shortcut for AlertGenerator(settings).generate()."""
    return AlertGenerator(settings or AlertSettings.from_config()).generate(
        deviations, frequency_changes, anomalies, now or datetime.now()
    )
