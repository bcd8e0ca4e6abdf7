"""
test_patterns.py
-----------------
Test suite for the pattern detection layer.

Run from the project root:
    python -m pytest tests/test_patterns.py -v

Tests are organized by layer:
    - Config & Models
    - Interval statistics & frequency classification
    - Scoring, stability & trend
    - Pattern change detection & prediction
    - Pattern detector (integration)
    - Expected payments
"""

import sys
import os
import pytest
from dataclasses import replace
from datetime import date, datetime, timedelta

# Ensure the project root and this folder are on the path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, os.path.dirname(__file__))

from config.config_loader import (
    get_canonical_interval,
    get_frequency_band,
    get_pattern_detection_config,
    load_config,
    reset_config,
)
from core.expected_payments import (
    calculate_pattern_statistics,
    estimate_franking_credits,
    generate_expected_dividend_calendar,
    generate_expected_dividends,
)
from core.frequency_classifier import classify_frequency, classify_interval
from core.interval_stats import compute_intervals, interval_statistics, sort_payments
from core.models import (
    AmountTrend,
    Frequency,
    PatternConfidence,
    PatternStability,
    PaymentRecord,
    holding_key,
)
from core.pattern_changes import detect_pattern_changes
from core.pattern_detector import PatternDetector, detect_pattern
from core.prediction import predict_next_payment
from core.scoring import amount_trend, confidence_level, min_payments_for, pattern_stability
from core.seasonality import detect_seasonal_pattern, seasonal_consistency

from factories import (
    ANALYSIS_NOW,
    MONTHLY_DATES,
    QUARTERLY_DATES,
    generate_test_payments,
    make_payments,
)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture(autouse=True)
def reset_config_cache():
    """Clears config cache before each test for isolation."""
    reset_config()
    yield
    reset_config()


def _payments_from_intervals(intervals, start=date(2020, 1, 1), amount=100.0):
    """Helper: builds a payment series whose gaps are exactly `intervals`."""
    dates = [start]
    for gap in intervals:
        dates.append(dates[-1] + timedelta(days=gap))
    return make_payments([d.isoformat() for d in dates], amount)


# =============================================================================
# CONFIG & MODELS
# =============================================================================

class TestConfigAndModels:

    def test_config_loads(self):
        config = load_config()
        assert "pattern_detection" in config
        assert "alert_detection" in config
        assert "alert_defaults" in config

    def test_frequency_bands_present(self):
        bands = get_pattern_detection_config()["frequency_bands"]
        assert set(bands) == {"monthly", "quarterly", "half-yearly", "yearly"}
        for band in bands.values():
            assert band["min_days"] < band["target_days"] < band["max_days"]

    def test_no_band_for_irregular(self):
        assert get_frequency_band(Frequency.IRREGULAR) is None
        assert get_frequency_band(Frequency.QUARTERLY)["target_days"] == 91

    def test_canonical_intervals(self):
        assert get_canonical_interval(Frequency.YEARLY) == 365
        assert get_canonical_interval("unknown") == 90

    def test_unknown_canonical_interval_raises(self):
        with pytest.raises(KeyError):
            get_canonical_interval("fortnightly")

    def test_holding_key_prefers_asx_code(self):
        assert holding_key(" bhp ", "BHP Group") == "BHP"

    def test_holding_key_normalizes_company_name(self):
        assert holding_key(None, "  Wesfarmers  Ltd ") == "WESFARMERS_LTD"
        assert holding_key("", "Wesfarmers Ltd") == "WESFARMERS_LTD"

    def test_payment_record_from_csv_row(self):
        row = {
            "id": 7.0, "company_name": "Telstra", "asx_code": float("nan"),
            "amount": "42.5", "date_received": "2024-09-26T00:00:00",
            "franking_percentage": None, "tax_year": "2024-25",
        }
        payment = PaymentRecord.from_dict(row)
        assert payment.id == 7
        assert payment.asx_code is None
        assert payment.holding_id == "TELSTRA"
        assert payment.date_received == date(2024, 9, 26)
        assert payment.franking_percentage == 0.0

    def test_min_payments_zero_falls_back(self):
        assert min_payments_for(Frequency.UNKNOWN) == 3
        assert min_payments_for(Frequency.MONTHLY) == 6


# =============================================================================
# INTERVALS & CLASSIFICATION
# =============================================================================

class TestIntervalsAndClassification:

    def test_intervals_sorted_regardless_of_input_order(self):
        payments = make_payments(list(reversed(QUARTERLY_DATES)))
        stats = interval_statistics(payments)
        assert stats.intervals == [92, 92, 91]
        assert stats.min == 91 and stats.max == 92

    def test_single_payment_has_no_intervals(self):
        assert compute_intervals(make_payments(["2024-01-01"])) == []
        assert interval_statistics(make_payments(["2024-01-01"])).mean == 0.0

    def test_population_std_dev(self):
        stats = interval_statistics(_payments_from_intervals([80, 100]))
        assert stats.mean == pytest.approx(90.0)
        assert stats.std_dev == pytest.approx(10.0)
        assert stats.coefficient_of_variation == pytest.approx(10.0 / 90.0)

    def test_classify_monthly(self):
        frequency, score = classify_frequency([30, 31, 30, 31, 30], 6)
        assert frequency == Frequency.MONTHLY
        assert score > 0.9

    def test_classify_half_yearly(self):
        frequency, _ = classify_frequency([182, 183], 3)
        assert frequency == Frequency.HALF_YEARLY

    def test_classify_single_payment_unknown(self):
        assert classify_frequency([], 1) == (Frequency.UNKNOWN, 0.0)

    def test_dispersed_series_is_irregular(self):
        frequency, score = classify_frequency([30, 200, 60, 400], 5)
        assert frequency == Frequency.IRREGULAR
        assert score == pytest.approx(0.3)

    def test_dispersed_series_keeps_loose_band_match(self):
        # Alternating 60/120 averages 90: dispersed, but still a strong quarterly fit
        frequency, score = classify_frequency([60, 120, 60, 120], 5)
        assert frequency == Frequency.QUARTERLY
        assert score == pytest.approx(0.9)

    def test_no_band_match_is_irregular(self):
        frequency, _ = classify_frequency([500], 2)
        assert frequency == Frequency.IRREGULAR

    def test_coarse_interval_classifier(self):
        assert classify_interval(30) == Frequency.MONTHLY
        assert classify_interval(91) == Frequency.QUARTERLY
        assert classify_interval(182) == Frequency.HALF_YEARLY
        assert classify_interval(365) == Frequency.YEARLY
        assert classify_interval(500) == Frequency.IRREGULAR


# =============================================================================
# SCORING, STABILITY & TREND
# =============================================================================

class TestScoring:

    @pytest.mark.parametrize("score,expected", [
        (100, PatternConfidence.HIGH),
        (75, PatternConfidence.HIGH),
        (60, PatternConfidence.MEDIUM),
        (30, PatternConfidence.LOW),
        (10, PatternConfidence.UNCERTAIN),
    ])
    def test_confidence_levels(self, score, expected):
        assert confidence_level(score) == expected

    def test_stable_intervals(self):
        assert pattern_stability([91, 92, 91], []) == PatternStability.STABLE

    def test_too_few_intervals_is_changing(self):
        assert pattern_stability([91, 92], []) == PatternStability.CHANGING

    def test_dispersed_intervals_are_volatile(self):
        assert pattern_stability([30, 90, 200, 40], []) == PatternStability.VOLATILE

    def test_amount_trend(self):
        assert amount_trend([100, 100, 100]) == AmountTrend.STABLE
        assert amount_trend([100, 110, 120, 130]) == AmountTrend.INCREASING
        assert amount_trend([130, 120, 110, 100]) == AmountTrend.DECREASING
        assert amount_trend([100, 300, 50, 400]) == AmountTrend.VOLATILE

    def test_amount_trend_needs_three_payments(self):
        assert amount_trend([100, 200]) == AmountTrend.STABLE

    def test_seasonality_requires_repeat_months(self):
        assert detect_seasonal_pattern(make_payments(QUARTERLY_DATES)) is None

        two_years = make_payments(QUARTERLY_DATES + [
            "2025-03-14", "2025-06-13", "2025-09-15", "2025-12-15",
        ])
        seasonal = detect_seasonal_pattern(two_years)
        assert seasonal.months == [3, 6, 9, 12]
        assert seasonal.description == "Mar/Jun/Sep/Dec"

    def test_seasonal_consistency(self):
        assert seasonal_consistency(make_payments(QUARTERLY_DATES[:3])) == 0.0
        same_month = make_payments(["2021-03-01", "2022-03-01", "2023-03-01", "2024-03-01"])
        assert seasonal_consistency(same_month) < 0.1
        assert seasonal_consistency(make_payments(QUARTERLY_DATES)) == pytest.approx(0.59, abs=0.01)


# =============================================================================
# PATTERN CHANGES & PREDICTION
# =============================================================================

class TestChangesAndPrediction:

    def test_monthly_to_quarterly_change(self):
        intervals = [30, 30, 30, 30, 91, 91, 91, 91]
        payments = _payments_from_intervals(intervals)
        changes = detect_pattern_changes(payments, intervals, ANALYSIS_NOW)

        assert len(changes) >= 1
        first = changes[0]
        assert first.from_frequency == Frequency.MONTHLY
        assert first.to_frequency == Frequency.QUARTERLY
        assert first.change_date == payments[4].date_received
        assert first.detected_at == ANALYSIS_NOW

    def test_steady_series_has_no_changes(self):
        intervals = [91] * 8
        assert detect_pattern_changes(_payments_from_intervals(intervals), intervals, ANALYSIS_NOW) == []

    def test_large_shift_within_one_band_is_ignored(self):
        # 50 -> 100 days doubles the mean, but both sides classify as quarterly
        intervals = [50, 50, 50, 100, 100, 100, 100]
        assert detect_pattern_changes(_payments_from_intervals(intervals), intervals, ANALYSIS_NOW) == []

    def test_two_changes_make_pattern_volatile(self):
        intervals = [30, 30, 30, 30, 91, 91, 91, 91]
        changes = detect_pattern_changes(_payments_from_intervals(intervals), intervals, ANALYSIS_NOW)

        assert [c.id for c in changes] == ["change-3", "change-4"]
        assert pattern_stability(intervals, changes) == PatternStability.VOLATILE

    def test_single_change_makes_pattern_changing(self):
        intervals = [30, 30, 30, 30, 91, 91, 91]
        changes = detect_pattern_changes(_payments_from_intervals(intervals), intervals, ANALYSIS_NOW)

        assert len(changes) == 1
        assert changes[0].reason == "Interval changed from 30 to 71 days"
        assert pattern_stability(intervals, changes) == PatternStability.CHANGING

    def test_month_end_clamping(self):
        payments = make_payments(["2023-12-31", "2024-01-31"])
        nxt = predict_next_payment(payments, Frequency.MONTHLY, [31], 100.0)
        assert nxt.estimated_date == date(2024, 2, 29)
        assert nxt.confidence == PatternConfidence.MEDIUM

    def test_yearly_prediction_confidence(self):
        payments = make_payments(["2022-09-20", "2023-09-20", "2024-09-20"])
        nxt = predict_next_payment(payments, Frequency.YEARLY, [365, 366], 80.0)
        assert nxt.estimated_date == date(2025, 9, 20)
        assert nxt.confidence == PatternConfidence.MEDIUM

    def test_irregular_prediction_uses_mean_interval(self):
        payments = make_payments(["2024-01-01", "2024-03-01", "2024-08-01", "2024-09-01"])
        intervals = compute_intervals(payments)
        nxt = predict_next_payment(payments, Frequency.IRREGULAR, intervals, 123.456)
        assert nxt.estimated_date == date(2024, 11, 21)
        assert nxt.estimated_amount == 123.46
        assert nxt.confidence == PatternConfidence.LOW

    def test_irregular_prediction_needs_four_payments(self):
        payments = make_payments(["2024-01-01", "2024-03-01", "2024-08-01"])
        assert predict_next_payment(payments, Frequency.IRREGULAR, [60, 153], 100.0) is None


# =============================================================================
# PATTERN DETECTOR (INTEGRATION)
# =============================================================================

class TestPatternDetector:

    def test_empty_returns_none(self):
        assert detect_pattern([], ANALYSIS_NOW) is None

    def test_four_quarterly_payments(self):
        pattern = detect_pattern(make_payments(QUARTERLY_DATES), ANALYSIS_NOW)

        assert pattern.frequency == Frequency.QUARTERLY
        assert pattern.confidence_score > 50
        assert pattern.confidence == PatternConfidence.HIGH
        assert pattern.payments_analyzed == 4
        assert pattern.holding_id == "BHP"
        assert pattern.detected_pattern == "Quarterly Payments"
        assert pattern.next_expected_payment.estimated_date == date(2025, 3, 15)
        assert pattern.next_expected_payment.confidence == PatternConfidence.HIGH

    def test_six_monthly_payments(self):
        pattern = detect_pattern(make_payments(MONTHLY_DATES), ANALYSIS_NOW)
        assert pattern.frequency == Frequency.MONTHLY
        assert pattern.confidence == PatternConfidence.HIGH

    def test_single_payment(self):
        pattern = detect_pattern(make_payments(["2024-05-01"], 55.0), ANALYSIS_NOW)
        assert pattern.frequency == Frequency.UNKNOWN
        assert pattern.next_expected_payment is None
        assert pattern.statistics.average_amount == 55.0
        assert pattern.date_range.start == pattern.date_range.end == date(2024, 5, 1)

    def test_statistics(self):
        payments = make_payments(QUARTERLY_DATES, [100.0, 110.0, 120.0, 130.0], franking_percentage=50.0)
        stats = detect_pattern(payments, ANALYSIS_NOW).statistics
        assert stats.total_amount == 460.0
        assert stats.average_amount == 115.0
        assert stats.average_interval == 92
        assert stats.amount_trend == AmountTrend.INCREASING
        assert stats.average_franking_percentage == 50.0

    def test_idempotent_apart_from_analysis_date(self):
        payments = generate_test_payments(seed=7)
        first = PatternDetector().detect(payments, ANALYSIS_NOW)
        second = PatternDetector().detect(list(reversed(payments)), ANALYSIS_NOW + timedelta(days=3))

        assert first.analysis_date != second.analysis_date
        assert replace(first, analysis_date=ANALYSIS_NOW) == replace(second, analysis_date=ANALYSIS_NOW)

    def test_generated_quarterly_history(self):
        pattern = detect_pattern(generate_test_payments(count=8, seed=42), ANALYSIS_NOW)
        assert pattern.frequency == Frequency.QUARTERLY
        assert pattern.confidence == PatternConfidence.HIGH
        assert pattern.seasonal_pattern.months == [3, 6, 9, 12]
        assert pattern.detected_pattern == "Quarterly (Mar/Jun/Sep/Dec)"

    def test_generator_is_seeded(self):
        assert generate_test_payments(seed=1) == generate_test_payments(seed=1)
        assert generate_test_payments(seed=1) != generate_test_payments(seed=2)

    def test_input_order_does_not_matter(self):
        payments = make_payments(MONTHLY_DATES)
        assert sort_payments(reversed(payments)) == payments


# =============================================================================
# EXPECTED PAYMENTS
# =============================================================================

class TestExpectedPayments:

    def test_franking_credit_estimate(self):
        assert estimate_franking_credits(70.0, 100.0) == 30.0
        assert estimate_franking_credits(70.0, 0.0) == 0.0

    def test_upcoming_within_look_ahead(self):
        pattern = detect_pattern(make_payments(QUARTERLY_DATES), ANALYSIS_NOW)
        upcoming = generate_expected_dividends([pattern], ANALYSIS_NOW)

        assert len(upcoming) == 1
        assert upcoming[0].estimated_payment_date == date(2025, 3, 15)
        assert upcoming[0].days_until == 64
        assert upcoming[0].estimated_franking_credits == 42.86

    def test_outside_look_ahead_excluded(self):
        pattern = detect_pattern(make_payments(QUARTERLY_DATES), ANALYSIS_NOW)
        assert generate_expected_dividends([pattern], ANALYSIS_NOW, look_ahead_days=30) == []

    def test_calendar_occurrences(self):
        pattern = detect_pattern(make_payments(QUARTERLY_DATES), ANALYSIS_NOW)
        calendar = generate_expected_dividend_calendar([pattern], ANALYSIS_NOW)

        assert [e.estimated_payment_date for e in calendar] == [
            date(2025, 3, 15), date(2025, 6, 15), date(2025, 9, 15), date(2025, 12, 15),
        ]
        assert calendar[0].confidence == PatternConfidence.HIGH
        assert all(e.confidence == PatternConfidence.LOW for e in calendar[1:])

    def test_calendar_skips_unclassified(self):
        pattern = detect_pattern(make_payments(["2024-05-01"]), ANALYSIS_NOW)
        assert generate_expected_dividend_calendar([pattern], ANALYSIS_NOW) == []

    def test_pattern_statistics_summary(self):
        bhp = detect_pattern(make_payments(QUARTERLY_DATES), ANALYSIS_NOW)
        cba = detect_pattern(make_payments(
            ["2024-02-15", "2024-05-15", "2024-08-15", "2024-11-15"],
            company_name="Commonwealth Bank", asx_code="CBA", start_id=20,
        ), ANALYSIS_NOW)
        single = detect_pattern(make_payments(["2024-05-01"], company_name="Telstra", asx_code="TLS"), ANALYSIS_NOW)
        patterns = [bhp, cba, single]

        summary = calculate_pattern_statistics(patterns, ANALYSIS_NOW)

        assert summary.total_holdings == 3
        assert summary.by_frequency[Frequency.QUARTERLY] == 2
        assert summary.by_frequency[Frequency.UNKNOWN] == 1
        assert summary.by_frequency[Frequency.MONTHLY] == 0
        assert sum(summary.by_confidence.values()) == 3
        assert summary.by_confidence[PatternConfidence.HIGH] >= 1
        assert summary.average_confidence == round(sum(p.confidence_score for p in patterns) / 3)
        # BHP due 2025-03-15 (64 days), CBA 2025-02-15 (36 days); Telstra has no prediction
        assert summary.upcoming_payments_count == 2

    def test_pattern_statistics_window_and_empty(self):
        bhp = detect_pattern(make_payments(QUARTERLY_DATES), ANALYSIS_NOW)
        assert calculate_pattern_statistics([bhp], ANALYSIS_NOW, look_ahead_days=30).upcoming_payments_count == 0

        empty = calculate_pattern_statistics([], ANALYSIS_NOW)
        assert empty.total_holdings == 0
        assert empty.average_confidence == 0
        assert set(empty.by_frequency) == set(Frequency)
