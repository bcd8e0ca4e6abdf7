"""
main.py
--------
Entry point for the Dividend Alert Engine.

Reads a dividend payments CSV, detects each holding's payment pattern,
runs the alert detectors and writes patterns, alerts and upcoming
dividends to the outputs/ folder.

Input columns: id, company_name, asx_code, amount, date_received,
franking_percentage, tax_year (asx_code, franking_percentage and tax_year
may be blank).

Usage (from the project root):
    python main.py

    # With optional arguments:
    python main.py --input path/to/payments.csv
    python main.py --as-of 2025-01-31
    python main.py --min-confidence medium --workers 4
"""

import sys
import os
import argparse
import logging
import pandas as pd
from datetime import datetime

# Ensure project root is on path (for runs from any working directory)
PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, PROJECT_ROOT)

from alerts.lifecycle import calculate_alert_statistics, sort_alerts_by_priority
from core.expected_payments import calculate_pattern_statistics, generate_expected_dividends
from core.models import PatternConfidence, PaymentRecord
from export import export_alerts_to_csv, export_patterns_to_csv, patterns_to_frame
from pipeline import AlertMonitoringPipeline
from storage.repositories import (
    InMemoryAlertRepository,
    InMemoryPatternRepository,
    InMemoryPaymentSource,
    StaticSettingsSource,
)


# =============================================================================
# LOGGING SETUP
# =============================================================================

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("main")

CONFIDENCE_ORDER = {"high": 4, "medium": 3, "low": 2, "uncertain": 1}


# =============================================================================
# ARGUMENT PARSING
# =============================================================================

def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Dividend Alert Engine: detect payment patterns and flag missed or unusual dividends."
    )
    parser.add_argument(
        "--input", type=str, default=None,
        help="Path to input payments CSV. Defaults to dividend_payments.csv in project root."
    )
    parser.add_argument(
        "--output-dir", type=str, default=None,
        help="Output directory. Defaults to outputs/ in project root."
    )
    parser.add_argument(
        "--as-of", type=str, default=None,
        help="Analysis date (YYYY-MM-DD). Defaults to now."
    )
    parser.add_argument(
        "--min-confidence", type=str, default="uncertain",
        choices=list(CONFIDENCE_ORDER),
        help="Minimum pattern confidence to include in the patterns output. Default: uncertain (everything)."
    )
    parser.add_argument(
        "--workers", type=int, default=None,
        help="Thread pool size for pattern analysis. Default: sequential."
    )
    parser.add_argument(
        "--no-alerts", action="store_true", default=False,
        help="Only detect patterns; skip alert detection."
    )
    return parser.parse_args(argv)


# =============================================================================
# MAIN
# =============================================================================

def load_payments(path: str) -> list[PaymentRecord]:
    df = pd.read_csv(path, dtype={"asx_code": "string", "tax_year": "string"})
    df = df.astype(object).where(df.notna(), None)
    return [PaymentRecord.from_dict(row) for row in df.to_dict(orient="records")]


def main(argv=None):
    args = parse_args(argv)

    # --- Resolve paths ---
    input_path = args.input or os.path.join(PROJECT_ROOT, "dividend_payments.csv")
    output_dir = args.output_dir or os.path.join(PROJECT_ROOT, "outputs")
    os.makedirs(output_dir, exist_ok=True)
    now = datetime.fromisoformat(args.as_of) if args.as_of else datetime.now()

    # --- Load payments ---
    logger.info(f"Loading payments from: {input_path}")
    if not os.path.exists(input_path):
        logger.error(f"Input file not found: {input_path}")
        sys.exit(1)

    payments = load_payments(input_path)
    source = InMemoryPaymentSource(payments)
    logger.info(
        f"Loaded {len(payments):,} payments, "
        f"{len({p.holding_id for p in payments}):,} holdings. As of {now:%Y-%m-%d}."
    )

    # --- Run pipeline ---
    patterns_repo = InMemoryPatternRepository()
    alerts_repo = InMemoryAlertRepository()
    pipeline = AlertMonitoringPipeline(
        source, patterns_repo, alerts_repo, StaticSettingsSource(), max_workers=args.workers,
    )

    analysis = pipeline.run_pattern_analysis(now)
    for error in analysis.errors:
        logger.warning(error)
    if not args.no_alerts:
        pipeline.run_alert_detection(now)

    # --- Apply confidence filter ---
    min_rank = CONFIDENCE_ORDER[args.min_confidence]
    patterns = [
        p for p in patterns_repo.get_all_patterns()
        if CONFIDENCE_ORDER[p.confidence.value] >= min_rank
    ]
    logger.info(
        f"After filtering (>= {args.min_confidence}): {len(patterns):,} patterns. "
        f"Filtered out: {analysis.patterns_detected - len(patterns):,}."
    )

    # --- Output ---
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    patterns_path = os.path.join(output_dir, f"patterns_{timestamp}.csv")
    export_patterns_to_csv(patterns, patterns_path)
    logger.info(f"Patterns saved to: {patterns_path}")

    alerts = sort_alerts_by_priority(alerts_repo.query())
    if alerts:
        alerts_path = os.path.join(output_dir, f"alerts_{timestamp}.csv")
        export_alerts_to_csv(alerts, alerts_path)
        logger.info(f"Alerts saved to: {alerts_path}")
    elif not args.no_alerts:
        logger.info("No alerts raised.")

    upcoming = generate_expected_dividends(patterns, now)
    if upcoming:
        upcoming_path = os.path.join(output_dir, f"expected_dividends_{timestamp}.csv")
        pd.DataFrame([vars(e) for e in upcoming]).to_csv(upcoming_path, index=False)
        logger.info(f"Expected dividends saved to: {upcoming_path}")

    _print_summary(patterns_to_frame(patterns), alerts, calculate_pattern_statistics(patterns, now))


def _print_summary(df: pd.DataFrame, alerts, summary):
    """Prints a clean summary table to the console."""
    if df.empty:
        print("\n  No patterns to display.\n")
        return

    print("\n" + "=" * 80)
    print("  DIVIDEND PATTERN SUMMARY")
    print("=" * 80)

    # By frequency
    print("\n  Patterns by Frequency:")
    print("  " + "-" * 60)
    for frequency, count in summary.by_frequency.items():
        if count == 0:
            continue
        subset = df[df["frequency"] == frequency.value]
        high = (subset["confidence"] == PatternConfidence.HIGH.value).sum()
        med = (subset["confidence"] == PatternConfidence.MEDIUM.value).sum()
        print(f"    {frequency.value:30s}  {count:>5,} holdings  (High: {high}, Medium: {med})")

    # By confidence
    print(f"\n  Confidence Mix (average score: {summary.average_confidence}):")
    print("  " + "-" * 60)
    for level, count in summary.by_confidence.items():
        pct = (count / summary.total_holdings * 100) if summary.total_holdings > 0 else 0
        print(f"    {level.value:10s}  {count:>5,}  ({pct:.1f}%)")
    print(f"\n  Payments due in the look-ahead window: {summary.upcoming_payments_count:,}")

    # Alerts
    if alerts:
        stats = calculate_alert_statistics(alerts)
        print(f"\n  Alerts: {stats.total_alerts:,} ({stats.active_alerts:,} active)")
        print("  " + "-" * 60)
        for severity, count in stats.by_severity.items():
            print(f"    {severity.value:10s}  {count:>5,}")
        for alert in alerts[:10]:
            print(f"    [{alert.severity.value.upper():8s}] {alert.title}")
    print("=" * 80 + "\n")


if __name__ == "__main__":
    main()
