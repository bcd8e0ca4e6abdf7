"""
frequency_classifier.py
------------------------
Maps interval statistics to a payment frequency.

Two classifiers live here:
    - classify_frequency(): the band-matching classifier used for the
      headline pattern. Scores the mean interval against each configured
      band and falls back to "irregular" when the series is too dispersed
      or matches nothing well.
    - classify_interval(): a coarse cut-off classifier used to label the
      windows either side of a suspected regime change.
"""

from typing import Sequence, Tuple

from config.config_loader import get_pattern_detection_config
from core.interval_stats import summarize_intervals
from core.models import Frequency


def band_scores(mean_interval: float) -> list[Tuple[Frequency, float]]:
    """
    Match score per configured band, in config order:
        score = max(0, 1 - |mean - target| / (band_width / 2))
    """
    bands = get_pattern_detection_config()["frequency_bands"]
    scores = []
    for name, band in bands.items():
        half_width = (band["max_days"] - band["min_days"]) / 2
        diff = abs(mean_interval - band["target_days"])
        scores.append((Frequency(name), max(0.0, 1 - diff / half_width)))
    return scores


def classify_frequency(intervals: Sequence[int], payment_count: int) -> Tuple[Frequency, float]:
    """
    Classifies a payment series.

    Returns:
        Tuple of (frequency, match_score). A single payment, or no intervals,
        is always UNKNOWN.
    """
    if payment_count <= 1 or len(intervals) == 0:
        return (Frequency.UNKNOWN, 0.0)

    cfg = get_pattern_detection_config()
    stats = summarize_intervals(intervals)

    # First band wins ties
    best_freq, best_score = Frequency.UNKNOWN, -1.0
    for freq, score in band_scores(stats.mean):
        if score > best_score:
            best_freq, best_score = freq, score

    # Dispersed series: only accept a loose band match
    tolerance = stats.mean * cfg["dispersion_tolerance"]
    if stats.variance > tolerance * tolerance and payment_count >= cfg["dispersion_min_payments"]:
        if best_score > cfg["loose_match_score"]:
            return (best_freq, best_score)
        return (Frequency.IRREGULAR, 0.3)

    if best_score < cfg["min_match_score"]:
        return (Frequency.IRREGULAR, best_score)

    return (best_freq, best_score)


def classify_interval(interval: float) -> Frequency:
    """Coarse interval -> frequency used by the pattern change detector."""
    cutoffs = get_pattern_detection_config()["coarse_cutoffs"]
    for name, limit in cutoffs.items():
        if interval < limit:
            return Frequency(name)
    return Frequency.IRREGULAR
