"""
pipeline.py
------------
Main orchestration layer. Wires together:
    1. PatternDetector     →  one Pattern per holding (batch, isolated)
    2. Alert detectors     →  missed payments, frequency changes, anomalies
    3. AlertGenerator      →  Alert entities; new ones saved to the alert store

This is the single entry point for running the engine against a store.
Everything else is internal machinery.

Usage:
    from pipeline import AlertMonitoringPipeline

    pipeline = AlertMonitoringPipeline(payments, patterns, alerts, settings)
    pipeline.run(now=datetime(2025, 1, 1))
"""

import logging
import threading
import time
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from alerts.alert_generator import AlertGenerator
from core.models import AlertGenerationResult, AlertSettings, Pattern, PatternAnalysisResult, PaymentRecord
from core.pattern_detector import detect_pattern
from detectors.frequency_change import FrequencyChangeDetector
from detectors.missed_payment import MissedPaymentDetector
from detectors.payment_anomaly import PaymentAnomalyDetector
from storage.repositories import (
    AlertRepository,
    InMemoryRunLog,
    PatternRepository,
    PaymentSource,
    RunLog,
    RunRecord,
    SettingsSource,
)

logger = logging.getLogger(__name__)


# =============================================================================
# BATCH PATTERN ANALYSIS
# =============================================================================

def group_payments_by_holding(payments: Iterable[PaymentRecord]) -> Dict[str, List[PaymentRecord]]:
    """Builds the holding_id -> payments map consumed by analyze_patterns."""
    grouped: Dict[str, List[PaymentRecord]] = defaultdict(list)
    for payment in payments:
        grouped[payment.holding_id].append(payment)
    return {key: grouped[key] for key in sorted(grouped)}


def _analyze_one(key: str, payments: Sequence[PaymentRecord], now: datetime):
    """Returns (pattern, error) for one holding. Never raises."""
    try:
        return detect_pattern(payments, now), None
    except Exception as e:
        logger.exception(f"Pattern analysis failed for {key}.")
        return None, f"Error analyzing {key}: {e}"


def analyze_patterns(
    holdings: Mapping[str, Sequence[PaymentRecord]],
    now: datetime | None = None,
    abort_event: Optional[threading.Event] = None,
    max_workers: int | None = None,
) -> PatternAnalysisResult:
    """
    Detect patterns for every holding in the batch.

    A failure for one holding is recorded in `errors` and does not stop the
    others. The abort event is checked between holdings; once set, remaining
    holdings are skipped and the result is flagged `aborted`.

    Args:
        holdings: holding key -> payment history.
        now: Analysis timestamp shared by every holding.
        abort_event: Optional cooperative cancellation flag.
        max_workers: Run on a thread pool of this size when greater than 1.

    Returns:
        PatternAnalysisResult with patterns in holding-key order.
    """
    now = now or datetime.now()
    keys = sorted(holdings)
    outcomes: Dict[str, tuple] = {}

    def should_stop() -> bool:
        return abort_event is not None and abort_event.is_set()

    if max_workers and max_workers > 1:
        def task(key):
            if should_stop():
                return None
            return _analyze_one(key, holdings[key], now)

        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            for key, outcome in zip(keys, pool.map(task, keys)):
                if outcome is not None:
                    outcomes[key] = outcome
    else:
        for key in keys:
            if should_stop():
                break
            outcomes[key] = _analyze_one(key, holdings[key], now)

    patterns: List[Pattern] = []
    errors: List[str] = []
    failed: List[str] = []
    for key in keys:
        if key not in outcomes:
            continue
        pattern, error = outcomes[key]
        if pattern is not None:
            patterns.append(pattern)
        if error is not None:
            errors.append(error)
            failed.append(key)

    aborted = should_stop() and len(outcomes) < len(keys)
    if aborted:
        logger.warning(f"Pattern analysis aborted after {len(outcomes)} of {len(keys)} holdings.")

    logger.info(
        f"Pattern analysis complete. Holdings: {len(keys)}, "
        f"patterns: {len(patterns)}, errors: {len(errors)}."
    )

    return PatternAnalysisResult(
        patterns=patterns,
        analyzed_at=now,
        total_holdings=len(keys),
        patterns_detected=len(patterns),
        errors=errors,
        aborted=aborted,
        failed_holdings=failed,
    )


# =============================================================================
# STORE-BACKED PIPELINE
# =============================================================================

class AlertMonitoringPipeline:
    """
    End-to-end dividend monitoring pipeline over injected repositories.

    Orchestrates pattern analysis → detection → alert generation without
    holding any module-level store handles. Each stage is recorded in the
    run log.
    """

    def __init__(
        self,
        payment_source: PaymentSource,
        pattern_repository: PatternRepository,
        alert_repository: AlertRepository,
        settings_source: SettingsSource,
        run_log: RunLog | None = None,
        max_workers: int | None = None,
    ):
        self.payment_source = payment_source
        self.pattern_repository = pattern_repository
        self.alert_repository = alert_repository
        self.settings_source = settings_source
        self.run_log = run_log or InMemoryRunLog()
        self.max_workers = max_workers

        self.missed_detector = MissedPaymentDetector()
        self.frequency_detector = FrequencyChangeDetector()
        self.anomaly_detector = PaymentAnomalyDetector()

    # -------------------------------------------------------------------------
    # PUBLIC INTERFACE
    # -------------------------------------------------------------------------

    def run(self, now: datetime | None = None) -> Optional[AlertGenerationResult]:
        """Pattern analysis followed by alert detection, sharing one `now`."""
        now = now or datetime.now()
        self.run_pattern_analysis(now)
        return self.run_alert_detection(now)

    def run_pattern_analysis(
        self, now: datetime | None = None, abort_event: Optional[threading.Event] = None
    ) -> PatternAnalysisResult:
        """
        Re-analyzes every holding and replaces its stored pattern.

        Each pattern's changes are also added to the change history, which
        survives later replacements of the pattern. A holding whose analysis
        fails keeps its previous pattern, and a warning names it: alert
        detection will keep using that pattern's predictions until a later
        run succeeds.
        """
        now = now or datetime.now()
        run = self._start_run("pattern_analysis", now)
        started = time.perf_counter()

        try:
            holdings = group_payments_by_holding(self.payment_source.get_all_payments())
            result = analyze_patterns(holdings, now, abort_event=abort_event, max_workers=self.max_workers)
            changes_saved = 0
            for pattern in result.patterns:
                self.pattern_repository.save_pattern(pattern)
                for change in pattern.pattern_changes:
                    self.pattern_repository.save_pattern_change(pattern.holding_id, change)
                    changes_saved += 1
            for key in result.failed_holdings:
                stale = self.pattern_repository.get_pattern(key)
                if stale is not None:
                    logger.warning(
                        f"Keeping stale pattern for {key} from {stale.analysis_date:%Y-%m-%d %H:%M}; "
                        f"analysis failed this run."
                    )
        except Exception as e:
            self._fail_run(run, started, e)
            raise

        self._complete_run(run, started, {
            "holdings": result.total_holdings,
            "patterns": result.patterns_detected,
            "pattern_changes": changes_saved,
            "errors": len(result.errors),
        })
        return result

    def run_alert_detection(self, now: datetime | None = None) -> Optional[AlertGenerationResult]:
        """
        Runs all detectors over stored patterns and saves new alerts.

        Alerts whose id is already stored are left as they are, so a user's
        acknowledge/dismiss is not undone by the next run. The flip side is
        that a stored alert's message, severity and days_deviation stay as
        they were at first detection. A missed-payment alert's id comes from
        the expected date, so an alert raised at 5 days overdue (info) still
        reads "5 days overdue" when the payment is 60 days late; the live
        lateness is in the latest AlertGenerationResult.missed_payments.

        Returns:
            AlertGenerationResult, or None when alerts are disabled.
        """
        now = now or datetime.now()
        settings = self.settings_source.get_settings()
        run = self._start_run("alert_detection", now)
        started = time.perf_counter()

        if not settings.enabled:
            logger.info("Alerts disabled in settings. Skipping alert detection.")
            self._complete_run(run, started, {"alerts": 0, "new_alerts": 0})
            return None

        try:
            result = self._detect_and_generate(settings, now)
            new_alerts = [a for a in result.alerts if self.alert_repository.get_alert(a.id) is None]
            self.alert_repository.save_alerts(new_alerts)
        except Exception as e:
            self._fail_run(run, started, e)
            raise

        self._complete_run(run, started, {
            "missed_payments": len(result.missed_payments),
            "frequency_changes": len(result.frequency_changes),
            "anomalies": len(result.amount_anomalies),
            "alerts": result.total_generated,
            "new_alerts": len(new_alerts),
        })
        return result

    # -------------------------------------------------------------------------
    # INTERNAL: DETECTION
    # -------------------------------------------------------------------------

    def _detect_and_generate(self, settings: AlertSettings, now: datetime) -> AlertGenerationResult:
        patterns = self.pattern_repository.get_all_patterns()
        payments = self.payment_source.get_all_payments()

        deviations = self.missed_detector.detect(patterns, payments, settings, now)
        changes = self.frequency_detector.detect(patterns, payments, settings, now)
        anomalies = self.anomaly_detector.detect(patterns, payments, settings, now)
        logger.info(
            f"Detection complete. Missed: {len(deviations)}, "
            f"frequency changes: {len(changes)}, anomalies: {len(anomalies)}."
        )

        return AlertGenerator(settings).generate(deviations, changes, anomalies, now)

    # -------------------------------------------------------------------------
    # INTERNAL: RUN LOG
    # -------------------------------------------------------------------------

    def _start_run(self, kind: str, now: datetime) -> RunRecord:
        run = RunRecord(id=f"{kind}-{now:%Y%m%dT%H%M%S%f}", kind=kind, started_at=now)
        self.run_log.save_run(run)
        return run

    def _complete_run(self, run: RunRecord, started: float, counts: Dict[str, int]) -> None:
        run.status = "completed"
        run.duration_ms = round((time.perf_counter() - started) * 1000, 1)
        run.completed_at = run.started_at + timedelta(milliseconds=run.duration_ms)
        run.counts = counts
        self.run_log.save_run(run)
        logger.info(f"Run {run.id} completed in {run.duration_ms}ms. {counts}")

    def _fail_run(self, run: RunRecord, started: float, error: Exception) -> None:
        run.status = "failed"
        run.duration_ms = round((time.perf_counter() - started) * 1000, 1)
        run.completed_at = run.started_at + timedelta(milliseconds=run.duration_ms)
        run.error_message = str(error)
        self.run_log.save_run(run)
        logger.error(f"Run {run.id} failed: {error}")
