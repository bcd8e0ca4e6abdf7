"""
test_alerts.py
---------------
Test suite for alert generation and the alert lifecycle.

Run from the project root:
    python -m pytest tests/test_alerts.py -v
"""

import sys
import os
import pytest
from dataclasses import replace
from datetime import datetime, timedelta

# Ensure the project root and this folder are on the path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, os.path.dirname(__file__))

from alerts.alert_generator import AlertGenerator, alert_id, generate_alerts
from alerts.lifecycle import (
    AlertAction,
    acknowledge_alert,
    apply_action,
    calculate_alert_statistics,
    can_transition,
    dismiss_alert,
    filter_alerts,
    reactivate_alert,
    resolve_alert,
    sort_alerts_by_priority,
)
from config.config_loader import reset_config
from core.exceptions import AlertEngineError, InvalidAlertTransition
from core.models import (
    Alert,
    AlertFilterOptions,
    AlertSettings,
    AlertSeverity,
    AlertStatus,
    AlertType,
    Frequency,
)
from core.pattern_detector import detect_pattern
from detectors.frequency_change import detect_frequency_changes
from detectors.missed_payment import detect_pattern_deviations
from detectors.payment_anomaly import detect_payment_anomalies

from factories import ANALYSIS_NOW, QUARTERLY_DATES, QUARTERLY_THEN_YEARLY_DATES, make_payments


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture(autouse=True)
def reset_config_cache():
    """Clears config cache before each test for isolation."""
    reset_config()
    yield
    reset_config()


def _missed(days_overdue: int):
    payments = make_payments(QUARTERLY_DATES)
    pattern = detect_pattern(payments, ANALYSIS_NOW)
    now = datetime(2025, 3, 15) + timedelta(days=days_overdue)
    return detect_pattern_deviations([pattern], payments, AlertSettings(), now), now


def _anomalies(amounts, dates=QUARTERLY_DATES, patterns=()):
    payments = make_payments(dates, amounts)
    return detect_payment_anomalies(list(patterns), payments, AlertSettings(), ANALYSIS_NOW)


def _make_alert(
    alert_id: str = "alert-1",
    severity: AlertSeverity = AlertSeverity.WARNING,
    status: AlertStatus = AlertStatus.ACTIVE,
    created_at: datetime = datetime(2025, 1, 1, 9),
    holding_id: str = "BHP",
    company_name: str = "BHP Group",
    alert_type: AlertType = AlertType.MISSED_PAYMENT,
) -> Alert:
    """Helper: a minimal alert."""
    return Alert(
        id=alert_id,
        type=alert_type,
        severity=severity,
        status=status,
        holding_id=holding_id,
        company_name=company_name,
        title=f"{company_name}: Expected Dividend Overdue",
        message="Expected dividend payment is overdue.",
        created_at=created_at,
        updated_at=created_at,
    )


# =============================================================================
# ALERT GENERATOR
# =============================================================================

class TestAlertGenerator:

    @pytest.mark.parametrize("days,severity", [
        (10, AlertSeverity.INFO),
        (20, AlertSeverity.WARNING),
        (35, AlertSeverity.CRITICAL),
    ])
    def test_missed_payment_severity(self, days, severity):
        deviations, now = _missed(days)
        result = generate_alerts(deviations, [], [], AlertSettings(), now)

        alert = result.alerts[0]
        assert alert.type == AlertType.MISSED_PAYMENT
        assert alert.severity == severity
        assert alert.days_deviation == days

    def test_missed_payment_details(self):
        deviations, now = _missed(20)
        alert = generate_alerts(deviations, [], [], AlertSettings(), now).alerts[0]

        assert alert.status == AlertStatus.ACTIVE
        assert alert.title == "BHP Group: Expected Dividend Overdue"
        assert "20 days overdue" in alert.message
        assert alert.details["suggested_action"] == "investigate"
        assert alert.details["historical_reliability"] == 1.0
        assert alert.details["last_payment_date"] == "2024-12-15"
        assert alert.created_at == alert.updated_at == now
        assert alert.pattern_id == "BHP"

    def test_alert_ids_are_deterministic(self):
        deviations, now = _missed(20)
        first = generate_alerts(deviations, [], [], AlertSettings(), now)
        second = generate_alerts(deviations, [], [], AlertSettings(), now + timedelta(hours=6))

        assert first.alerts[0].id == second.alerts[0].id
        assert first.alerts[0].id.startswith("alert-missed-BHP-")

    def test_alert_id_depends_on_key(self):
        assert alert_id("missed", "BHP", "2025-03-15") != alert_id("missed", "BHP", "2025-06-15")
        assert alert_id("missed", "BHP", "2025-03-15") == alert_id("missed", "BHP", "2025-03-15")

    def test_frequency_change_alert(self):
        payments = make_payments(QUARTERLY_THEN_YEARLY_DATES)
        pattern = detect_pattern(payments, ANALYSIS_NOW)
        changes = detect_frequency_changes([pattern], payments, AlertSettings(), ANALYSIS_NOW)

        alert = generate_alerts([], changes, [], AlertSettings(), ANALYSIS_NOW).alerts[0]
        assert alert.type == AlertType.FREQUENCY_CHANGE
        assert alert.severity == AlertSeverity.INFO
        assert alert.previous_pattern == Frequency.QUARTERLY
        assert alert.current_pattern == Frequency.YEARLY
        assert "from quarterly to yearly" in alert.message
        assert alert.details["recent_intervals"] == [365, 365]
        assert alert.details["confidence"] == "high"

    def test_frequency_change_severity_from_settings(self):
        payments = make_payments(QUARTERLY_THEN_YEARLY_DATES)
        pattern = detect_pattern(payments, ANALYSIS_NOW)
        changes = detect_frequency_changes([pattern], payments, AlertSettings(), ANALYSIS_NOW)

        settings = AlertSettings(frequency_change_severity=AlertSeverity.WARNING)
        assert generate_alerts([], changes, [], settings, ANALYSIS_NOW).alerts[0].severity == AlertSeverity.WARNING

        disabled = AlertSettings(detect_frequency_changes=False)
        assert generate_alerts([], changes, [], disabled, ANALYSIS_NOW).alerts == []

    def test_fifty_percent_spike_reads_as_early_payment(self):
        alert = generate_alerts([], [], _anomalies([100, 100, 100, 150]), AlertSettings(), ANALYSIS_NOW).alerts[0]
        assert alert.type == AlertType.EARLY_PAYMENT
        assert alert.severity == AlertSeverity.WARNING

    def test_large_spike_is_amount_anomaly(self):
        alert = generate_alerts([], [], _anomalies([100, 100, 100, 210]), AlertSettings(), ANALYSIS_NOW).alerts[0]

        assert alert.type == AlertType.AMOUNT_ANOMALY
        assert alert.severity == AlertSeverity.CRITICAL
        assert alert.title == "BHP Group: Unusually High Dividend Payment"
        assert "$210.00 is 110.0% higher" in alert.message
        assert "$100.00" in alert.message
        assert alert.actual_amount == 210.0
        assert alert.amount_deviation == pytest.approx(110.0)
        assert alert.details["expected_range"] == {"min": 100.0, "max": 100.0}
        assert alert.details["previous_payments"] == 3

    def test_drop_is_amount_anomaly(self):
        alert = generate_alerts([], [], _anomalies([100, 100, 100, 50]), AlertSettings(), ANALYSIS_NOW).alerts[0]
        assert alert.type == AlertType.AMOUNT_ANOMALY
        assert "50.0% lower" in alert.message

    def test_timing_alert_direction(self):
        pattern = detect_pattern(make_payments(QUARTERLY_DATES), ANALYSIS_NOW)
        late = _anomalies(100.0, QUARTERLY_DATES + ["2025-04-15"], [pattern])
        early = _anomalies(100.0, QUARTERLY_DATES + ["2025-01-15"], [pattern])

        late_alert = generate_alerts([], [], late, AlertSettings(), ANALYSIS_NOW).alerts[0]
        early_alert = generate_alerts([], [], early, AlertSettings(), ANALYSIS_NOW).alerts[0]
        assert late_alert.type == AlertType.LATE_PAYMENT
        assert "30 days later" in late_alert.message
        assert early_alert.type == AlertType.EARLY_PAYMENT
        assert "60 days earlier" in early_alert.message

    def test_result_counts(self):
        deviations, now = _missed(35)
        anomalies = _anomalies([100, 100, 100, 150])
        result = AlertGenerator(AlertSettings()).generate(deviations, [], anomalies, now)

        assert result.total_generated == 2
        assert result.by_severity[AlertSeverity.CRITICAL] == 1
        assert result.by_severity[AlertSeverity.WARNING] == 1
        assert result.by_severity[AlertSeverity.INFO] == 0
        assert result.missed_payments == deviations

    def test_empty_inputs(self):
        result = generate_alerts([], [], [], AlertSettings(), ANALYSIS_NOW)
        assert result.alerts == []
        assert result.total_generated == 0


# =============================================================================
# LIFECYCLE
# =============================================================================

class TestAlertLifecycle:

    NOW = datetime(2025, 1, 2, 10)

    def test_acknowledge(self):
        alert = _make_alert()
        acked = acknowledge_alert(alert, acknowledged_by="ops", now=self.NOW)

        assert acked.status == AlertStatus.ACKNOWLEDGED
        assert acked.acknowledged_by == "ops"
        assert acked.updated_at == self.NOW
        assert alert.status == AlertStatus.ACTIVE

    def test_acknowledge_then_resolve(self):
        resolved = resolve_alert(acknowledge_alert(_make_alert(), now=self.NOW), notes="Paid late", now=self.NOW)
        assert resolved.status == AlertStatus.RESOLVED
        assert resolved.resolved_at == self.NOW
        assert resolved.notes == "Paid late"

    def test_dismiss_and_reactivate(self):
        dismissed = dismiss_alert(_make_alert(), notes="Known delay", now=self.NOW)
        assert dismissed.status == AlertStatus.DISMISSED

        later = self.NOW + timedelta(days=1)
        reactivated = reactivate_alert(dismissed, now=later)
        assert reactivated.status == AlertStatus.ACTIVE
        assert reactivated.updated_at == later
        assert reactivated.notes == "Known delay"

    def test_reactivate_clears_resolved_at(self):
        resolved = resolve_alert(_make_alert(), now=self.NOW)
        assert reactivate_alert(resolved, now=self.NOW).resolved_at is None

    def test_resolve_keeps_existing_notes(self):
        noted = replace(_make_alert(), notes="Registry contacted")
        assert resolve_alert(noted, now=self.NOW).notes == "Registry contacted"

    @pytest.mark.parametrize("status,action", [
        (AlertStatus.ACKNOWLEDGED, AlertAction.ACKNOWLEDGE),
        (AlertStatus.RESOLVED, AlertAction.RESOLVE),
        (AlertStatus.DISMISSED, AlertAction.ACKNOWLEDGE),
        (AlertStatus.ACTIVE, AlertAction.REACTIVATE),
    ])
    def test_illegal_transitions_raise(self, status, action):
        alert = _make_alert(status=status)
        assert not can_transition(status, action)
        with pytest.raises(InvalidAlertTransition) as excinfo:
            apply_action(alert, action, now=self.NOW)
        assert isinstance(excinfo.value, AlertEngineError)
        assert excinfo.value.alert_id == "alert-1"

    def test_apply_action_dispatch(self):
        acked = apply_action(_make_alert(), AlertAction.ACKNOWLEDGE, now=self.NOW, acknowledged_by="me")
        assert acked.acknowledged_by == "me"
        assert apply_action(acked, "resolve", now=self.NOW).status == AlertStatus.RESOLVED


# =============================================================================
# FILTERING, SORTING & STATISTICS
# =============================================================================

class TestAlertQueries:

    def _alerts(self):
        return [
            _make_alert("a", AlertSeverity.WARNING, created_at=datetime(2025, 1, 1)),
            _make_alert("b", AlertSeverity.CRITICAL, created_at=datetime(2025, 1, 2)),
            _make_alert("c", AlertSeverity.CRITICAL, AlertStatus.ACKNOWLEDGED, datetime(2025, 1, 4)),
            _make_alert(
                "d", AlertSeverity.CRITICAL, created_at=datetime(2025, 1, 3),
                holding_id="WES", company_name="Wesfarmers", alert_type=AlertType.AMOUNT_ANOMALY,
            ),
            _make_alert("e", AlertSeverity.INFO, AlertStatus.RESOLVED, datetime(2025, 1, 5)),
        ]

    def test_sort_by_priority(self):
        ordered = sort_alerts_by_priority(self._alerts())
        assert [a.id for a in ordered] == ["d", "b", "a", "c", "e"]

    def test_filter_by_severity_and_status(self):
        filters = AlertFilterOptions(severity=[AlertSeverity.CRITICAL], status=[AlertStatus.ACTIVE])
        assert {a.id for a in filter_alerts(self._alerts(), filters)} == {"b", "d"}

    def test_filter_by_type_and_holding(self):
        assert [a.id for a in filter_alerts(self._alerts(), AlertFilterOptions(type=[AlertType.AMOUNT_ANOMALY]))] == ["d"]
        assert len(filter_alerts(self._alerts(), AlertFilterOptions(holding_id="BHP"))) == 4

    def test_filter_by_date_range(self):
        filters = AlertFilterOptions(date_from=datetime(2025, 1, 2), date_to=datetime(2025, 1, 3))
        assert {a.id for a in filter_alerts(self._alerts(), filters)} == {"b", "d"}

    def test_search_is_case_insensitive(self):
        assert [a.id for a in filter_alerts(self._alerts(), AlertFilterOptions(search_query="WESFARMERS"))] == ["d"]

    def test_empty_filter_matches_everything(self):
        assert len(filter_alerts(self._alerts(), AlertFilterOptions())) == 5

    def test_statistics(self):
        alerts = self._alerts()
        alerts[4] = replace(alerts[4], resolved_at=datetime(2025, 1, 5, 3))
        alerts[0] = replace(alerts[0], status=AlertStatus.RESOLVED, resolved_at=datetime(2025, 1, 1, 6))

        stats = calculate_alert_statistics(alerts)
        assert stats.total_alerts == 5
        assert stats.active_alerts == 2
        assert stats.by_severity[AlertSeverity.CRITICAL] == 3
        assert stats.by_type[AlertType.AMOUNT_ANOMALY] == 1
        assert stats.by_status[AlertStatus.RESOLVED] == 2
        assert stats.average_resolution_time_hours == 4.5
        assert stats.most_affected_holding == "BHP"

    def test_statistics_empty(self):
        stats = calculate_alert_statistics([])
        assert stats.total_alerts == 0
        assert stats.average_resolution_time_hours is None
        assert stats.most_affected_holding is None
