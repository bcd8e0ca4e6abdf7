"""
lifecycle.py
-------------
Alert status state machine and read-side utilities.

    active ──acknowledge──> acknowledged ──resolve──> resolved
      │                          │                       │
      ├──resolve─────────────────┼──────────> resolved   │
      └──dismiss──> dismissed <──┘                       │
                        │                                │
                        └─────reactivate──> active <─────┘

Transitions are looked up in TRANSITIONS; anything not listed raises
InvalidAlertTransition. Alerts are frozen, so every transition returns a
new Alert and leaves the input untouched.
"""

from collections import Counter
from dataclasses import replace
from datetime import datetime
from enum import Enum
from typing import Iterable, List, Optional

import numpy as np

from core.exceptions import InvalidAlertTransition
from core.models import (
    SEVERITY_PRIORITY,
    STATUS_PRIORITY,
    Alert,
    AlertFilterOptions,
    AlertSeverity,
    AlertStatistics,
    AlertStatus,
    AlertType,
)


class AlertAction(str, Enum):
    ACKNOWLEDGE = "acknowledge"
    RESOLVE = "resolve"
    DISMISS = "dismiss"
    REACTIVATE = "reactivate"


TRANSITIONS = {
    (AlertStatus.ACTIVE, AlertAction.ACKNOWLEDGE): AlertStatus.ACKNOWLEDGED,
    (AlertStatus.ACTIVE, AlertAction.RESOLVE): AlertStatus.RESOLVED,
    (AlertStatus.ACTIVE, AlertAction.DISMISS): AlertStatus.DISMISSED,
    (AlertStatus.ACKNOWLEDGED, AlertAction.RESOLVE): AlertStatus.RESOLVED,
    (AlertStatus.ACKNOWLEDGED, AlertAction.DISMISS): AlertStatus.DISMISSED,
    (AlertStatus.RESOLVED, AlertAction.REACTIVATE): AlertStatus.ACTIVE,
    (AlertStatus.DISMISSED, AlertAction.REACTIVATE): AlertStatus.ACTIVE,
}


def can_transition(status: AlertStatus, action: AlertAction) -> bool:
    return (status, action) in TRANSITIONS


def _next_status(alert: Alert, action: AlertAction) -> AlertStatus:
    try:
        return TRANSITIONS[(alert.status, action)]
    except KeyError:
        raise InvalidAlertTransition(alert.id, alert.status.value, action.value) from None


# =============================================================================
# TRANSITIONS
# =============================================================================

def acknowledge_alert(alert: Alert, acknowledged_by: Optional[str] = None, now: datetime | None = None) -> Alert:
    now = now or datetime.now()
    return replace(
        alert,
        status=_next_status(alert, AlertAction.ACKNOWLEDGE),
        acknowledged_by=acknowledged_by,
        updated_at=now,
    )


def resolve_alert(alert: Alert, notes: Optional[str] = None, now: datetime | None = None) -> Alert:
    now = now or datetime.now()
    return replace(
        alert,
        status=_next_status(alert, AlertAction.RESOLVE),
        resolved_at=now,
        updated_at=now,
        notes=notes or alert.notes,
    )


def dismiss_alert(alert: Alert, notes: Optional[str] = None, now: datetime | None = None) -> Alert:
    now = now or datetime.now()
    return replace(
        alert,
        status=_next_status(alert, AlertAction.DISMISS),
        updated_at=now,
        notes=notes or alert.notes,
    )


def reactivate_alert(alert: Alert, notes: Optional[str] = None, now: datetime | None = None) -> Alert:
    now = now or datetime.now()
    return replace(
        alert,
        status=_next_status(alert, AlertAction.REACTIVATE),
        resolved_at=None,
        updated_at=now,
        notes=notes or alert.notes,
    )


def apply_action(alert: Alert, action: AlertAction, now: datetime | None = None, **kwargs) -> Alert:
    """Dispatch by action; kwargs are passed to the matching transition."""
    handlers = {
        AlertAction.ACKNOWLEDGE: acknowledge_alert,
        AlertAction.RESOLVE: resolve_alert,
        AlertAction.DISMISS: dismiss_alert,
        AlertAction.REACTIVATE: reactivate_alert,
    }
    return handlers[AlertAction(action)](alert, now=now, **kwargs)


# =============================================================================
# FILTERING & SORTING
# =============================================================================

def filter_alerts(alerts: Iterable[Alert], filters: AlertFilterOptions) -> List[Alert]:
    """Alerts matching every filter that is set. Empty lists mean "any"."""
    query = filters.search_query.lower() if filters.search_query else None
    matched = []
    for alert in alerts:
        if filters.severity and alert.severity not in filters.severity:
            continue
        if filters.type and alert.type not in filters.type:
            continue
        if filters.status and alert.status not in filters.status:
            continue
        if filters.holding_id and alert.holding_id != filters.holding_id:
            continue
        if filters.date_from and alert.created_at < filters.date_from:
            continue
        if filters.date_to and alert.created_at > filters.date_to:
            continue
        if query:
            searchable = f"{alert.company_name} {alert.title} {alert.message}".lower()
            if query not in searchable:
                continue
        matched.append(alert)
    return matched


def sort_alerts_by_priority(alerts: Iterable[Alert]) -> List[Alert]:
    """Status (active first), then severity (critical first), then newest first."""
    newest_first = sorted(alerts, key=lambda a: a.created_at, reverse=True)
    return sorted(
        newest_first,
        key=lambda a: (STATUS_PRIORITY[a.status], SEVERITY_PRIORITY[a.severity]),
    )


# =============================================================================
# STATISTICS
# =============================================================================

def calculate_alert_statistics(alerts: Iterable[Alert]) -> AlertStatistics:
    alerts = list(alerts)
    by_severity = {s: 0 for s in AlertSeverity}
    by_type = {t: 0 for t in AlertType}
    by_status = {s: 0 for s in AlertStatus}
    holdings: Counter = Counter()
    resolution_hours = []

    for alert in alerts:
        by_severity[alert.severity] += 1
        by_type[alert.type] += 1
        by_status[alert.status] += 1
        holdings[alert.holding_id] += 1
        if alert.resolved_at is not None:
            resolution_hours.append((alert.resolved_at - alert.created_at).total_seconds() / 3600)

    average_resolution = round(float(np.mean(resolution_hours)), 1) if resolution_hours else None
    most_affected = holdings.most_common(1)[0][0] if holdings else None

    return AlertStatistics(
        total_alerts=len(alerts),
        active_alerts=by_status[AlertStatus.ACTIVE],
        by_severity=by_severity,
        by_type=by_type,
        by_status=by_status,
        average_resolution_time_hours=average_resolution,
        most_affected_holding=most_affected,
    )
