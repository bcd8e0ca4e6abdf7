"""
scoring.py
-----------
Confidence scoring, stability labelling and amount trend for a pattern.

Confidence score (0-100) is a weighted composite:
    - count score (max 30):       enough payments for the frequency?
    - consistency score (max 40): low interval CV?
    - alignment score (max 20):   mean interval close to the band target?
    - seasonal bonus (max 10):    payments concentrated in the same months?
"""

from typing import Sequence

import numpy as np
from scipy import stats

from config.config_loader import get_pattern_detection_config, get_frequency_band
from core.models import AmountTrend, Frequency, PatternChange, PatternConfidence, PatternStability


COUNT_WEIGHT = 30
CONSISTENCY_WEIGHT = 40
ALIGNMENT_WEIGHT = 20
SEASONAL_WEIGHT = 10


def min_payments_for(frequency: Frequency) -> int:
    """Payments needed for the full count score. Zero falls back to the default."""
    cfg = get_pattern_detection_config()
    required = cfg["min_payments"].get(frequency.value, 0)
    return required or cfg["min_payments_fallback"]


def confidence_score(
    frequency: Frequency,
    payment_count: int,
    intervals: Sequence[int],
    coefficient_of_variation: float,
    seasonal_consistency: float,
) -> int:
    """Composite 0-100 confidence that the detected frequency is right."""
    score = min(payment_count / min_payments_for(frequency), 1) * COUNT_WEIGHT
    score += (1 - min(coefficient_of_variation, 1)) * CONSISTENCY_WEIGHT

    if len(intervals) > 0:
        mean_interval = float(np.mean(intervals))
        band = get_frequency_band(frequency)
        # No band (irregular/unknown): measured against itself
        target = band["target_days"] if band else mean_interval
        if target > 0:
            alignment = 1 - abs(mean_interval - target) / target
            score += max(0.0, alignment) * ALIGNMENT_WEIGHT

    score += seasonal_consistency * SEASONAL_WEIGHT
    return int(round(score))


def confidence_level(score: float) -> PatternConfidence:
    """Maps a 0-100 score to a qualitative level."""
    levels = get_pattern_detection_config()["confidence_levels"]
    if score >= levels["high"]:
        return PatternConfidence.HIGH
    if score >= levels["medium"]:
        return PatternConfidence.MEDIUM
    if score >= levels["low"]:
        return PatternConfidence.LOW
    return PatternConfidence.UNCERTAIN


def pattern_stability(
    intervals: Sequence[int], changes: Sequence[PatternChange]
) -> PatternStability:
    """
    Labels a pattern by its detected regime changes first, then by
    interval dispersion. Fewer than 3 intervals is not enough evidence
    to call a pattern stable.
    """
    if len(changes) > 1:
        return PatternStability.VOLATILE
    if len(changes) == 1:
        return PatternStability.CHANGING
    if len(intervals) < 3:
        return PatternStability.CHANGING

    cutoffs = get_pattern_detection_config()["stability"]
    arr = np.asarray(intervals, dtype=float)
    mean = float(np.mean(arr))
    cv = float(np.std(arr)) / mean if mean > 0 else 0.0

    if cv < cutoffs["stable_cv"]:
        return PatternStability.STABLE
    if cv < cutoffs["changing_cv"]:
        return PatternStability.CHANGING
    return PatternStability.VOLATILE


def amount_trend(amounts: Sequence[float]) -> AmountTrend:
    """
    Direction of dividend amounts over time.

    Volatile when the amount CV is high; otherwise the least-squares slope
    (per payment) relative to the mean decides between stable, increasing
    and decreasing.
    """
    if len(amounts) < 3:
        return AmountTrend.STABLE

    cfg = get_pattern_detection_config()["amount_trend"]
    arr = np.asarray(amounts, dtype=float)
    mean = float(np.mean(arr))
    if mean <= 0:
        return AmountTrend.STABLE

    cv = float(np.std(arr)) / mean
    if cv > cfg["volatile_cv"]:
        return AmountTrend.VOLATILE

    slope = stats.linregress(np.arange(len(arr)), arr).slope
    if abs(slope) / mean < cfg["stable_slope_ratio"]:
        return AmountTrend.STABLE
    return AmountTrend.INCREASING if slope > 0 else AmountTrend.DECREASING
