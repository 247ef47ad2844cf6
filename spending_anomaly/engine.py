"""
Per-user facade over the three analysis pipelines.

Holds one in-memory :class:`SpendingAnomalyDetector` per user so a trained
forest is reused across calls in the same process.  Nothing is persisted:
a new process starts with no models and retrains from the history it is
given.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from datetime import datetime
from typing import Optional

from spending_anomaly import observability, telemetry
from spending_anomaly.baseline import BaselineAlerter
from spending_anomaly.config import EngineConfig
from spending_anomaly.detector import SpendingAnomalyDetector
from spending_anomaly.models import AnalysisReport, Anomaly, SpendingPattern, to_utc, utc_now
from spending_anomaly.patterns import PatternAnalyzer
from spending_anomaly.validation import TransactionLike, coerce_transactions

logger = logging.getLogger("engine")


class SpendingInsightsEngine:
    """Entry point for host processes.

    Usage::

        engine = create_engine()   # logging, tracing, config from env
        report = engine.analyze("user-1", transactions)
        for anomaly in report.anomalies + report.threshold_alerts:
            notify(anomaly)
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()
        self.pattern_analyzer = PatternAnalyzer(self.config)
        self.baseline_alerter = BaselineAlerter(self.config)
        self._detectors: dict[str, SpendingAnomalyDetector] = {}
        self._lock = threading.Lock()

    # ── model cache ──────────────────────────────────────────────

    def detector_for(self, user_id: str) -> SpendingAnomalyDetector:
        with self._lock:
            detector = self._detectors.get(user_id)
            if detector is None:
                detector = SpendingAnomalyDetector(self.config)
                self._detectors[user_id] = detector
                telemetry.record_cached_models(len(self._detectors))
            return detector

    def forget_user(self, user_id: str) -> bool:
        """Drop the cached model for ``user_id``. Returns whether one existed."""
        with self._lock:
            existed = self._detectors.pop(user_id, None) is not None
            telemetry.record_cached_models(len(self._detectors))
            return existed

    @property
    def cached_users(self) -> list[str]:
        with self._lock:
            return list(self._detectors)

    # ── pipelines ────────────────────────────────────────────────

    def train_model(self, user_id: str, transactions: Iterable[TransactionLike]) -> bool:
        return self.detector_for(user_id).train_model(transactions)

    def detect_anomalies(
        self,
        user_id: str,
        transactions: Iterable[TransactionLike],
        detected_at: Optional[datetime] = None,
    ) -> list[Anomaly]:
        return self.detector_for(user_id).detect_anomalies(user_id, transactions, detected_at)

    def analyze_spending_patterns(
        self,
        user_id: str,
        transactions: Iterable[TransactionLike],
        analyzed_at: Optional[datetime] = None,
    ) -> list[SpendingPattern]:
        return self.pattern_analyzer.analyze_spending_patterns(user_id, transactions, analyzed_at)

    def check_spending_thresholds(
        self,
        user_id: str,
        transactions: Iterable[TransactionLike],
        now: Optional[datetime] = None,
    ) -> list[Anomaly]:
        return self.baseline_alerter.check_spending_thresholds(user_id, transactions, now)

    def analyze(
        self,
        user_id: str,
        transactions: Iterable[TransactionLike],
        now: Optional[datetime] = None,
    ) -> AnalysisReport:
        """Run all three pipelines over one validated snapshot of ``transactions``."""
        now = to_utc(now) if now is not None else utc_now()
        snapshot = coerce_transactions(transactions)
        report = AnalysisReport(
            user_id=user_id,
            generated_at=now,
            anomalies=self.detect_anomalies(user_id, snapshot, now),
            threshold_alerts=self.check_spending_thresholds(user_id, snapshot, now),
            patterns=self.analyze_spending_patterns(user_id, snapshot, now),
        )
        logger.info(
            "Analysis for user %s: anomalies=%d threshold_alerts=%d patterns=%d",
            user_id,
            len(report.anomalies),
            len(report.threshold_alerts),
            len(report.patterns),
        )
        return report


def create_engine(
    config: Optional[EngineConfig] = None,
    *,
    service_name: str = observability.SERVICE_NAME,
    log_level: int = logging.INFO,
    environment: Optional[str] = None,
    log_stream=None,
) -> SpendingInsightsEngine:
    """Host-process bootstrap: observability first, then the engine.

    ``config`` defaults to :meth:`EngineConfig.from_env`.
    """
    observability.init_observability(
        service_name,
        log_level=log_level,
        environment=environment,
        log_stream=log_stream,
    )
    engine = SpendingInsightsEngine(config or EngineConfig.from_env())
    logger.info(
        "Spending engine ready: trees=%d sample_size=%d anomaly_threshold=%.2f",
        engine.config.num_trees,
        engine.config.sample_size,
        engine.config.anomaly_threshold,
    )
    return engine
