"""
export.py
----------
Serializes patterns and alerts for downstream consumers.

JSON keeps the full nested structure (dates as ISO strings, enums as their
values). CSV is one flat row per pattern / alert, sorted for stable diffs.
"""

import json
from dataclasses import asdict
from datetime import date, datetime
from enum import Enum
from typing import Iterable, List

import pandas as pd

from core.models import Alert, Pattern


PATTERN_COLUMNS = [
    "holding_id", "asx_code", "company_name", "frequency", "confidence",
    "confidence_score", "detected_pattern", "pattern_stability",
    "payments_analyzed", "first_payment_date", "last_payment_date",
    "average_interval", "coefficient_of_variation", "average_amount",
    "total_amount", "amount_trend", "next_expected_date",
    "next_expected_amount", "next_expected_confidence", "analysis_date",
]

ALERT_COLUMNS = [
    "id", "type", "severity", "status", "holding_id", "asx_code",
    "company_name", "title", "message", "created_at", "updated_at",
    "expected_date", "actual_date", "expected_amount", "actual_amount",
    "days_deviation", "amount_deviation_percent", "resolved_at",
]


def _json_default(value):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _iso(value) -> str | None:
    return value.isoformat() if value is not None else None


# =============================================================================
# PATTERNS
# =============================================================================

def export_patterns_to_json(patterns: Iterable[Pattern], path: str | None = None) -> str:
    """Returns the JSON document; also writes it to `path` when given."""
    payload = json.dumps([asdict(p) for p in patterns], default=_json_default, indent=2)
    if path:
        with open(path, "w") as f:
            f.write(payload)
    return payload


def patterns_to_frame(patterns: Iterable[Pattern]) -> pd.DataFrame:
    rows: List[dict] = []
    for p in patterns:
        nxt = p.next_expected_payment
        rows.append({
            "holding_id": p.holding_id,
            "asx_code": p.asx_code,
            "company_name": p.company_name,
            "frequency": p.frequency.value,
            "confidence": p.confidence.value,
            "confidence_score": p.confidence_score,
            "detected_pattern": p.detected_pattern,
            "pattern_stability": p.pattern_stability.value,
            "payments_analyzed": p.payments_analyzed,
            "first_payment_date": _iso(p.date_range.start),
            "last_payment_date": _iso(p.date_range.end),
            "average_interval": p.statistics.average_interval,
            "coefficient_of_variation": p.statistics.coefficient_of_variation,
            "average_amount": p.statistics.average_amount,
            "total_amount": p.statistics.total_amount,
            "amount_trend": p.statistics.amount_trend.value,
            "next_expected_date": _iso(nxt.estimated_date) if nxt else None,
            "next_expected_amount": nxt.estimated_amount if nxt else None,
            "next_expected_confidence": nxt.confidence.value if nxt else None,
            "analysis_date": _iso(p.analysis_date),
        })

    if not rows:
        return pd.DataFrame(columns=PATTERN_COLUMNS)

    # Sort: confidence score descending → holding
    return (
        pd.DataFrame(rows, columns=PATTERN_COLUMNS)
        .sort_values(["confidence_score", "holding_id"], ascending=[False, True])
        .reset_index(drop=True)
    )


def export_patterns_to_csv(patterns: Iterable[Pattern], path: str | None = None) -> str:
    """Returns the CSV text; also writes it to `path` when given."""
    df = patterns_to_frame(patterns)
    if path:
        df.to_csv(path, index=False)
    return df.to_csv(index=False)


# =============================================================================
# ALERTS
# =============================================================================

def export_alerts_to_json(alerts: Iterable[Alert], path: str | None = None) -> str:
    payload = json.dumps([asdict(a) for a in alerts], default=_json_default, indent=2)
    if path:
        with open(path, "w") as f:
            f.write(payload)
    return payload


def alerts_to_frame(alerts: Iterable[Alert]) -> pd.DataFrame:
    rows = [
        {
            "id": a.id,
            "type": a.type.value,
            "severity": a.severity.value,
            "status": a.status.value,
            "holding_id": a.holding_id,
            "asx_code": a.asx_code,
            "company_name": a.company_name,
            "title": a.title,
            "message": a.message,
            "created_at": _iso(a.created_at),
            "updated_at": _iso(a.updated_at),
            "expected_date": _iso(a.expected_date),
            "actual_date": _iso(a.actual_date),
            "expected_amount": a.expected_amount,
            "actual_amount": a.actual_amount,
            "days_deviation": a.days_deviation,
            "amount_deviation_percent": a.amount_deviation_percent,
            "resolved_at": _iso(a.resolved_at),
        }
        for a in alerts
    ]
    if not rows:
        return pd.DataFrame(columns=ALERT_COLUMNS)
    return (
        pd.DataFrame(rows, columns=ALERT_COLUMNS)
        .sort_values(["holding_id", "id"])
        .reset_index(drop=True)
    )


def export_alerts_to_csv(alerts: Iterable[Alert], path: str | None = None) -> str:
    df = alerts_to_frame(alerts)
    if path:
        df.to_csv(path, index=False)
    return df.to_csv(index=False)
