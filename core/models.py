"""
models.py
----------
Core domain models. These are the typed contracts between engine layers.

- PaymentRecord: A single received dividend. Read-only input to the engine.

- Pattern: Output of the pattern detection layer. One per holding, rebuilt
  wholesale on every analysis run.

- PatternDeviation / FrequencyChangeDetection / PaymentAnomaly: Outputs of
  the detectors, consumed by the alert generator.

- Alert: The actionable, user-facing record. Type and severity are fixed at
  creation; only lifecycle fields change afterwards.
"""

import re
from dataclasses import dataclass, field, fields
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from config.config_loader import get_alert_defaults


# =============================================================================
# ENUMS
# =============================================================================

class Frequency(str, Enum):
    """Dividend payment frequency."""
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    HALF_YEARLY = "half-yearly"
    YEARLY = "yearly"
    IRREGULAR = "irregular"
    UNKNOWN = "unknown"

    @property
    def label(self) -> str:
        return _FREQUENCY_LABELS[self]


_FREQUENCY_LABELS = {
    Frequency.MONTHLY: "Monthly",
    Frequency.QUARTERLY: "Quarterly",
    Frequency.HALF_YEARLY: "Half-Yearly",
    Frequency.YEARLY: "Yearly",
    Frequency.IRREGULAR: "Irregular",
    Frequency.UNKNOWN: "Unknown",
}

# Calendar months between payments for the classified frequencies.
FREQUENCY_MONTHS = {
    Frequency.MONTHLY: 1,
    Frequency.QUARTERLY: 3,
    Frequency.HALF_YEARLY: 6,
    Frequency.YEARLY: 12,
}


class PatternConfidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    UNCERTAIN = "uncertain"


class PatternStability(str, Enum):
    STABLE = "stable"
    CHANGING = "changing"
    VOLATILE = "volatile"


class AmountTrend(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"
    VOLATILE = "volatile"


class AlertSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class AlertType(str, Enum):
    MISSED_PAYMENT = "missed_payment"        # Expected dividend didn't arrive
    FREQUENCY_CHANGE = "frequency_change"    # Company changed payment schedule
    AMOUNT_ANOMALY = "amount_anomaly"        # Unusual payment amount
    EARLY_PAYMENT = "early_payment"
    LATE_PAYMENT = "late_payment"
    NEW_PATTERN = "new_pattern"
    UPCOMING_PAYMENT = "upcoming_payment"
    PATTERN_UNCERTAIN = "pattern_uncertain"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()


class AlertStatus(str, Enum):
    ACTIVE = "active"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"


class AnomalyType(str, Enum):
    AMOUNT_SPIKE = "amount_spike"
    AMOUNT_DROP = "amount_drop"
    UNEXPECTED_PAYMENT = "unexpected_payment"
    IRREGULAR_TIMING = "irregular_timing"


class SuggestedAction(str, Enum):
    WAIT = "wait"
    INVESTIGATE = "investigate"
    CONTACT_COMPANY = "contact_company"


# Sort priorities: lower sorts first.
SEVERITY_PRIORITY = {
    AlertSeverity.CRITICAL: 0,
    AlertSeverity.WARNING: 1,
    AlertSeverity.INFO: 2,
}

STATUS_PRIORITY = {
    AlertStatus.ACTIVE: 0,
    AlertStatus.ACKNOWLEDGED: 1,
    AlertStatus.RESOLVED: 2,
    AlertStatus.DISMISSED: 3,
}


def holding_key(asx_code: str | None, company_name: str) -> str:
    """
    Canonical holding identifier: the ASX code when present, otherwise the
    company name upper-cased with whitespace collapsed to underscores.
    """
    if asx_code and asx_code.strip():
        return asx_code.strip().upper()
    return re.sub(r"\s+", "_", company_name.upper().strip())


# =============================================================================
# INPUT
# =============================================================================

@dataclass(frozen=True)
class PaymentRecord:
    """A received dividend payment for a holding."""

    id: int
    company_name: str
    amount: float
    date_received: date
    franking_percentage: float = 0.0
    asx_code: Optional[str] = None
    tax_year: Optional[str] = None

    @property
    def holding_id(self) -> str:
        return holding_key(self.asx_code, self.company_name)

    @classmethod
    def from_dict(cls, row: dict) -> "PaymentRecord":
        """Builds a record from a flat dict (CSV row / JSON object)."""
        received = row["date_received"]
        if isinstance(received, datetime):
            received = received.date()
        elif isinstance(received, str):
            received = date.fromisoformat(received[:10])

        asx_code = row.get("asx_code")
        tax_year = row.get("tax_year")
        return cls(
            id=int(row.get("id") or 0),
            company_name=str(row["company_name"]),
            amount=float(row["amount"]),
            date_received=received,
            franking_percentage=float(row.get("franking_percentage") or 0.0),
            asx_code=str(asx_code) if _present(asx_code) else None,
            tax_year=str(tax_year) if _present(tax_year) else None,
        )


def _present(value: Any) -> bool:
    # CSV readers hand back NaN for empty cells.
    if value is None:
        return False
    if isinstance(value, float) and value != value:
        return False
    return str(value).strip() != ""


# =============================================================================
# PATTERN DETECTION OUTPUT
# =============================================================================

@dataclass
class SeasonalPattern:
    months: list[int]                # 1-12, sorted
    description: str                 # e.g. "Mar/Jun/Sep/Dec"


@dataclass
class DateRange:
    start: date
    end: date


@dataclass
class PatternChange:
    """Evidence of an intra-history regime shift."""
    id: str
    change_date: date
    from_frequency: Frequency
    to_frequency: Frequency
    reason: str
    detected_at: datetime
    holding_id: Optional[str] = None     # stamped when stored in the change history


@dataclass
class NextExpectedPayment:
    estimated_date: date
    estimated_amount: float
    confidence: PatternConfidence


@dataclass
class PatternStatistics:
    average_interval: int            # days
    interval_std_dev: int
    min_interval: int
    max_interval: int
    coefficient_of_variation: float
    total_amount: float
    average_amount: float
    amount_trend: AmountTrend
    seasonal_consistency: float      # 0-1
    average_franking_percentage: float = 0.0


@dataclass
class Pattern:
    """Detected payment pattern for one holding."""

    holding_id: str
    company_name: str
    frequency: Frequency
    confidence: PatternConfidence
    confidence_score: int            # 0-100
    detected_pattern: str
    analysis_date: datetime
    payments_analyzed: int
    date_range: DateRange
    pattern_stability: PatternStability
    statistics: PatternStatistics
    asx_code: Optional[str] = None
    seasonal_pattern: Optional[SeasonalPattern] = None
    pattern_changes: list[PatternChange] = field(default_factory=list)
    next_expected_payment: Optional[NextExpectedPayment] = None

    @property
    def id(self) -> str:
        return self.holding_id

    def summary(self) -> str:
        return (
            f"{self.company_name}: {self.frequency.value} "
            f"({self.confidence.value} confidence, {self.confidence_score}%)"
        )


@dataclass
class PatternAnalysisResult:
    patterns: list[Pattern]
    analyzed_at: datetime
    total_holdings: int
    patterns_detected: int
    errors: list[str] = field(default_factory=list)
    aborted: bool = False
    failed_holdings: list[str] = field(default_factory=list)


@dataclass
class PatternSummary:
    """Portfolio-level roll-up of stored patterns."""
    total_holdings: int
    by_frequency: dict[Frequency, int]
    by_confidence: dict[PatternConfidence, int]
    average_confidence: int          # mean confidence_score, rounded
    upcoming_payments_count: int     # next expected date inside the look-ahead


@dataclass
class ExpectedDividend:
    holding_id: str
    company_name: str
    estimated_payment_date: date
    estimated_amount: float
    estimated_franking_credits: float
    estimated_franking_percentage: float
    confidence: PatternConfidence
    frequency: Frequency
    last_payment_date: date
    average_amount: float
    payments_count: int
    days_until: int
    asx_code: Optional[str] = None


# =============================================================================
# ALERT SETTINGS
# =============================================================================

@dataclass(frozen=True)
class AlertSettings:
    """
    Alert toggles and thresholds. Owned by the caller and passed by value
    into every detector. Quiet-hours fields are stored but not consulted.
    """

    enabled: bool = True
    missed_payment_threshold_days: int = 14
    missed_payment_severity: AlertSeverity = AlertSeverity.WARNING
    detect_frequency_changes: bool = True
    frequency_change_severity: AlertSeverity = AlertSeverity.INFO
    detect_amount_anomalies: bool = True
    amount_anomaly_threshold: float = 30.0           # percent
    amount_anomaly_severity: AlertSeverity = AlertSeverity.WARNING
    detect_timing_deviations: bool = True
    timing_deviation_threshold_days: int = 7
    timing_deviation_severity: AlertSeverity = AlertSeverity.INFO
    upcoming_payment_reminders: bool = True
    upcoming_payment_days: int = 7
    alert_on_low_confidence: bool = False
    quiet_hours_enabled: bool = False
    quiet_hours_start: Optional[str] = None          # HH:MM
    quiet_hours_end: Optional[str] = None

    @classmethod
    def from_dict(cls, values: dict) -> "AlertSettings":
        """Builds settings from a dict, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in values.items() if k in known}
        for key in ("missed_payment_severity", "frequency_change_severity",
                    "amount_anomaly_severity", "timing_deviation_severity"):
            if key in kwargs and kwargs[key] is not None:
                kwargs[key] = AlertSeverity(kwargs[key])
        return cls(**kwargs)

    @classmethod
    def from_config(cls) -> "AlertSettings":
        """Settings populated from the alert_defaults config block."""
        return cls.from_dict(get_alert_defaults())


# =============================================================================
# DETECTOR OUTPUT
# =============================================================================

@dataclass
class PatternDeviation:
    """An expected payment that has not arrived."""
    holding_id: str
    company_name: str
    pattern_id: str
    expected_date: date
    expected_amount: float
    days_overdue: int
    confidence: PatternConfidence
    last_payment_date: date
    suggested_action: SuggestedAction
    historical_reliability: float    # 0-1
    asx_code: Optional[str] = None


@dataclass
class FrequencyChangeEvidence:
    recent_intervals: list[int]
    previous_intervals: list[int]
    recent_average: float
    previous_average: float


@dataclass
class FrequencyChangeDetection:
    holding_id: str
    company_name: str
    previous_frequency: Frequency
    current_frequency: Frequency
    detected_at: datetime
    evidence: FrequencyChangeEvidence
    confidence: PatternConfidence
    reason: str
    asx_code: Optional[str] = None


@dataclass
class AmountRange:
    min: float
    max: float


@dataclass
class PaymentAnomaly:
    holding_id: str
    company_name: str
    payment_id: int
    payment_date: date
    payment_amount: float
    anomaly_type: AnomalyType
    severity: AlertSeverity
    average_amount: float
    expected_range: AmountRange
    deviation_percent: float
    previous_payments: int
    historical_average: float
    days_deviation: int = 0          # actual gap minus canonical; > 0 means late
    asx_code: Optional[str] = None


# =============================================================================
# ALERTS
# =============================================================================

@dataclass(frozen=True)
class Alert:
    """
    A dividend alert. Frozen: lifecycle changes produce a new instance via
    alerts.lifecycle, never in-place mutation.
    """

    id: str
    type: AlertType
    severity: AlertSeverity
    status: AlertStatus
    holding_id: str
    company_name: str
    title: str
    message: str
    created_at: datetime
    updated_at: datetime
    details: dict = field(default_factory=dict)
    asx_code: Optional[str] = None
    resolved_at: Optional[datetime] = None

    # Expected vs actual
    expected_date: Optional[date] = None
    expected_amount: Optional[float] = None
    actual_date: Optional[date] = None
    actual_amount: Optional[float] = None

    # Pattern linkage
    pattern_id: Optional[str] = None
    previous_pattern: Optional[Frequency] = None
    current_pattern: Optional[Frequency] = None

    # Deviation metrics
    days_deviation: Optional[int] = None
    amount_deviation: Optional[float] = None
    amount_deviation_percent: Optional[float] = None

    payment_id: Optional[int] = None

    # User actions
    acknowledged_by: Optional[str] = None
    notes: Optional[str] = None


@dataclass
class AlertGenerationResult:
    alerts: list[Alert]
    generated_at: datetime
    missed_payments: list[PatternDeviation]
    frequency_changes: list[FrequencyChangeDetection]
    amount_anomalies: list[PaymentAnomaly]
    total_generated: int
    by_severity: dict[AlertSeverity, int]


@dataclass
class AlertFilterOptions:
    severity: list[AlertSeverity] = field(default_factory=list)
    type: list[AlertType] = field(default_factory=list)
    status: list[AlertStatus] = field(default_factory=list)
    holding_id: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    search_query: Optional[str] = None


@dataclass
class AlertStatistics:
    total_alerts: int
    active_alerts: int
    by_severity: dict[AlertSeverity, int]
    by_type: dict[AlertType, int]
    by_status: dict[AlertStatus, int]
    average_resolution_time_hours: Optional[float] = None
    most_affected_holding: Optional[str] = None
