"""
base_detector.py
-----------------
Abstract base class for all alert detectors.

Each concrete detector (missed payments, frequency changes, payment
anomalies) inherits from this. Holding matching, payment grouping and
interval maths against canonical frequencies live here.

Concrete detectors only need to implement:
    - detect(): compare patterns and payments under the given settings.

Detectors are total: given well-formed inputs they return a (possibly
empty) list and never raise for control flow. "now" is always injected.
"""

from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Sequence

import numpy as np

from config.config_loader import get_alert_detection_config, get_canonical_interval
from core.interval_stats import compute_intervals, sort_payments
from core.models import AlertSettings, Frequency, Pattern, PaymentRecord


class BaseDetector(ABC):
    """
    Abstract base for alert detectors.

    Subclasses implement detect(). This class handles holding matching and
    the interval helpers every detector needs.
    """

    def __init__(self):
        self.config = get_alert_detection_config()

    # -------------------------------------------------------------------------
    # ABSTRACT METHODS
    # -------------------------------------------------------------------------

    @abstractmethod
    def detect(
        self,
        patterns: Sequence[Pattern],
        payments: Sequence[PaymentRecord],
        settings: AlertSettings,
        now: datetime,
    ) -> list:
        """Return detector findings, sorted as the detector defines."""
        ...

    # -------------------------------------------------------------------------
    # SHARED HELPERS
    # -------------------------------------------------------------------------

    @staticmethod
    def _matches(pattern: Pattern, payment: PaymentRecord) -> bool:
        """Does this payment belong to the pattern's holding?"""
        key = payment.holding_id
        return key == pattern.holding_id or (pattern.asx_code is not None and key == pattern.asx_code)

    def _payments_for(self, pattern: Pattern, payments: Iterable[PaymentRecord]) -> List[PaymentRecord]:
        """Payments for a pattern's holding, sorted ascending by date."""
        return sort_payments(p for p in payments if self._matches(pattern, p))

    @staticmethod
    def _group_by_holding(payments: Iterable[PaymentRecord]) -> Dict[str, List[PaymentRecord]]:
        """Sorted payment lists keyed by holding id, in key order."""
        grouped: Dict[str, List[PaymentRecord]] = defaultdict(list)
        for payment in payments:
            grouped[payment.holding_id].append(payment)
        return {key: sort_payments(grouped[key]) for key in sorted(grouped)}

    @staticmethod
    def _find_pattern(patterns: Sequence[Pattern], holding_id: str) -> Pattern | None:
        for pattern in patterns:
            if pattern.holding_id == holding_id or pattern.asx_code == holding_id:
                return pattern
        return None

    @staticmethod
    def _canonical_interval(frequency: Frequency) -> int:
        return get_canonical_interval(frequency)

    @staticmethod
    def _intervals(payments: Sequence[PaymentRecord]) -> List[int]:
        return compute_intervals(payments)

    @staticmethod
    def _cv(values: Sequence[float]) -> float:
        """Coefficient of variation; 1.0 when the mean is zero."""
        mean = float(np.mean(values))
        if mean <= 0:
            return 1.0
        return float(np.std(values)) / mean
