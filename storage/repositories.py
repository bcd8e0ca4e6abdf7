"""
repositories.py
----------------
Collaborator contracts at the engine boundary, plus in-memory implementations.

The engine never talks to a database directly. The pipeline is constructed
with these interfaces, so a SQL- or key-value-backed store can be swapped in
without touching detection logic, and tests use the in-memory versions.

    PaymentSource      ->  read payment history
    PatternRepository  ->  upsert / read patterns (full replace per holding)
                           and the pattern-change history, which outlives it
    AlertRepository    ->  upsert / transition / query alerts
    SettingsSource     ->  supply AlertSettings (never written by the engine)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from alerts.lifecycle import AlertAction, apply_action, filter_alerts
from core.interval_stats import sort_payments
from core.models import (
    Alert,
    AlertFilterOptions,
    AlertSettings,
    AlertStatus,
    Pattern,
    PatternChange,
    PaymentRecord,
)


# =============================================================================
# RUN RECORDS
# =============================================================================

@dataclass
class RunRecord:
    """Bookkeeping for one analysis or alert run."""
    id: str
    kind: str                        # "pattern_analysis" | "alert_detection"
    started_at: datetime
    status: str = "running"          # "running" | "completed" | "failed"
    completed_at: Optional[datetime] = None
    duration_ms: Optional[float] = None
    counts: Dict[str, int] = field(default_factory=dict)
    error_message: Optional[str] = None


# =============================================================================
# INTERFACES
# =============================================================================

class PaymentSource(ABC):

    @abstractmethod
    def get_payment_history(self, holding_id: str) -> List[PaymentRecord]:
        ...

    @abstractmethod
    def get_all_payments(self) -> List[PaymentRecord]:
        ...


class PatternRepository(ABC):

    @abstractmethod
    def save_pattern(self, pattern: Pattern) -> None:
        ...

    @abstractmethod
    def get_pattern(self, holding_id: str) -> Optional[Pattern]:
        ...

    @abstractmethod
    def get_all_patterns(self) -> List[Pattern]:
        ...

    @abstractmethod
    def save_pattern_change(self, holding_id: str, change: PatternChange) -> None:
        """Upserts by (holding, change id); the first detected_at is kept."""

    @abstractmethod
    def get_pattern_changes(self, holding_id: str) -> List[PatternChange]:
        """Newest change_date first."""

    @abstractmethod
    def get_all_pattern_changes(self) -> List[PatternChange]:
        """Every holding's changes, newest change_date first."""


class AlertRepository(ABC):

    @abstractmethod
    def save_alert(self, alert: Alert) -> None:
        ...

    @abstractmethod
    def get_alert(self, alert_id: str) -> Optional[Alert]:
        ...

    @abstractmethod
    def query(self, filters: AlertFilterOptions | None = None) -> List[Alert]:
        ...

    @abstractmethod
    def transition(self, alert_id: str, action: AlertAction, now: datetime, **kwargs) -> Alert:
        ...

    def save_alerts(self, alerts: Iterable[Alert]) -> None:
        for alert in alerts:
            self.save_alert(alert)

    def acknowledge(self, alert_id: str, acknowledged_by: str | None = None, now: datetime | None = None) -> Alert:
        return self.transition(alert_id, AlertAction.ACKNOWLEDGE, now or datetime.now(), acknowledged_by=acknowledged_by)

    def resolve(self, alert_id: str, notes: str | None = None, now: datetime | None = None) -> Alert:
        return self.transition(alert_id, AlertAction.RESOLVE, now or datetime.now(), notes=notes)

    def dismiss(self, alert_id: str, notes: str | None = None, now: datetime | None = None) -> Alert:
        return self.transition(alert_id, AlertAction.DISMISS, now or datetime.now(), notes=notes)

    def reactivate(self, alert_id: str, notes: str | None = None, now: datetime | None = None) -> Alert:
        return self.transition(alert_id, AlertAction.REACTIVATE, now or datetime.now(), notes=notes)


class SettingsSource(ABC):

    @abstractmethod
    def get_settings(self) -> AlertSettings:
        ...


class RunLog(ABC):

    @abstractmethod
    def save_run(self, run: RunRecord) -> None:
        ...

    @abstractmethod
    def get_runs(self, kind: str | None = None, limit: int = 10) -> List[RunRecord]:
        ...


# =============================================================================
# IN-MEMORY IMPLEMENTATIONS
# =============================================================================

class InMemoryPaymentSource(PaymentSource):

    def __init__(self, payments: Iterable[PaymentRecord] = ()):
        self._payments: List[PaymentRecord] = list(payments)

    def add(self, payment: PaymentRecord) -> None:
        self._payments.append(payment)

    def get_payment_history(self, holding_id: str) -> List[PaymentRecord]:
        return sort_payments(p for p in self._payments if p.holding_id == holding_id)

    def get_all_payments(self) -> List[PaymentRecord]:
        return sort_payments(self._payments)


class InMemoryPatternRepository(PatternRepository):

    def __init__(self):
        self._patterns: Dict[str, Pattern] = {}
        self._changes: Dict[str, Dict[str, PatternChange]] = {}

    def save_pattern(self, pattern: Pattern) -> None:
        # Full replace: the previous pattern for the holding is superseded
        self._patterns[pattern.holding_id] = pattern

    def get_pattern(self, holding_id: str) -> Optional[Pattern]:
        return self._patterns.get(holding_id)

    def get_all_patterns(self) -> List[Pattern]:
        return [self._patterns[k] for k in sorted(self._patterns)]

    def save_pattern_change(self, holding_id: str, change: PatternChange) -> None:
        changes = self._changes.setdefault(holding_id, {})
        existing = changes.get(change.id)
        detected_at = existing.detected_at if existing is not None else change.detected_at
        changes[change.id] = replace(change, holding_id=holding_id, detected_at=detected_at)

    def get_pattern_changes(self, holding_id: str) -> List[PatternChange]:
        return _newest_first(self._changes.get(holding_id, {}).values())

    def get_all_pattern_changes(self) -> List[PatternChange]:
        return _newest_first(c for changes in self._changes.values() for c in changes.values())


def _newest_first(changes: Iterable[PatternChange]) -> List[PatternChange]:
    return sorted(changes, key=lambda c: c.change_date, reverse=True)


class InMemoryAlertRepository(AlertRepository):

    def __init__(self):
        self._alerts: Dict[str, Alert] = {}

    def save_alert(self, alert: Alert) -> None:
        self._alerts[alert.id] = alert

    def get_alert(self, alert_id: str) -> Optional[Alert]:
        return self._alerts.get(alert_id)

    def query(self, filters: AlertFilterOptions | None = None) -> List[Alert]:
        alerts = list(self._alerts.values())
        return filter_alerts(alerts, filters) if filters else alerts

    def active_alerts(self) -> List[Alert]:
        return self.query(AlertFilterOptions(status=[AlertStatus.ACTIVE]))

    def transition(self, alert_id: str, action: AlertAction, now: datetime, **kwargs) -> Alert:
        """
        Raises:
            KeyError: If no alert has this id.
            InvalidAlertTransition: If the action is not allowed from the
                alert's current status.
        """
        if alert_id not in self._alerts:
            raise KeyError(f"Alert not found: {alert_id}")
        updated = apply_action(self._alerts[alert_id], action, now=now, **kwargs)
        self._alerts[alert_id] = updated
        return updated

    def __len__(self) -> int:
        return len(self._alerts)


class StaticSettingsSource(SettingsSource):

    def __init__(self, settings: AlertSettings | None = None):
        self._settings = settings or AlertSettings.from_config()

    def get_settings(self) -> AlertSettings:
        return self._settings


class InMemoryRunLog(RunLog):

    def __init__(self):
        self._runs: Dict[str, RunRecord] = {}

    def save_run(self, run: RunRecord) -> None:
        self._runs[run.id] = run

    def get_runs(self, kind: str | None = None, limit: int = 10) -> List[RunRecord]:
        runs = [r for r in self._runs.values() if kind is None or r.kind == kind]
        return sorted(runs, key=lambda r: r.started_at, reverse=True)[:limit]
