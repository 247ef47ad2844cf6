"""
Isolation Forest spending-anomaly detector.

Trains an :class:`~spending_anomaly.isolation.IsolationForest` on a user's
transaction history and grades each recent transaction by its anomaly
score.  The model lives only in memory; callers that want to reuse it keep
the detector instance around (see :class:`spending_anomaly.engine.SpendingInsightsEngine`).
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Optional

import numpy as np
from opentelemetry import trace

from spending_anomaly import telemetry
from spending_anomaly.config import EngineConfig
from spending_anomaly.errors import InsufficientDataError
from spending_anomaly.features import FrequencyTables, build_feature_matrix
from spending_anomaly.isolation import IsolationForest
from spending_anomaly.models import Anomaly, AnomalyType, Severity, Transaction, utc_now
from spending_anomaly.validation import TransactionLike, coerce_transactions

logger = logging.getLogger("detector")


def format_amount(transaction: Transaction) -> str:
    if transaction.currency:
        return f"{transaction.currency} {transaction.amount:,.2f}"
    return f"{transaction.amount:,.2f}"


class SpendingAnomalyDetector:
    """Isolation Forest detector for one user's transaction history.

    Args:
        config: Engine configuration; defaults to :class:`EngineConfig()`.
        rng: Random source for training.  When omitted one is created from
            ``config.random_seed`` (OS entropy when the seed is ``None``).
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        self.config = config or EngineConfig()
        self._rng = rng if rng is not None else np.random.default_rng(self.config.random_seed)
        self._forest = IsolationForest(
            num_trees=self.config.num_trees,
            sample_size=self.config.sample_size,
            max_depth=self.config.max_tree_depth,
        )
        # Serialises training and the train-if-needed check in detect_anomalies
        self._lock = threading.RLock()

    @property
    def is_model_trained(self) -> bool:
        return self._forest.is_fitted

    @property
    def forest(self) -> IsolationForest:
        return self._forest

    # ── training ─────────────────────────────────────────────────

    def _require_training_size(self, transactions: Sequence[Transaction]) -> None:
        required = self.config.min_training_transactions
        if len(transactions) < required:
            raise InsufficientDataError(available=len(transactions), required=required)

    def train_model(self, transactions: Iterable[TransactionLike]) -> bool:
        """Fit the forest on ``transactions``.

        With fewer than ``min_training_transactions`` valid transactions the
        call logs a warning and leaves any previous model untouched.

        Returns:
            ``True`` when a new model was fitted.
        """
        transactions = coerce_transactions(transactions)
        tracer = trace.get_tracer(__name__)

        with tracer.start_as_current_span(
            "train isolation forest",
            attributes={"transactions.count": len(transactions)},
        ) as span:
            logger.info(
                "Training anomaly detection model on %d transactions", len(transactions)
            )
            try:
                self._require_training_size(transactions)
            except InsufficientDataError as exc:
                logger.warning("Skipping model training: %s", exc)
                span.set_attribute("training.skipped", True)
                telemetry.record_training("skipped")
                return False

            matrix = build_feature_matrix(transactions, transactions)
            start = time.perf_counter()
            with self._lock:
                self._forest.fit(matrix, self._rng)
            duration = time.perf_counter() - start

            span.set_attribute("training.trees", self._forest.n_trees)
            span.set_attribute("training.sample_size", self._forest.fitted_sample_size)
            telemetry.record_training("trained", duration)
            logger.info(
                "Anomaly detection model trained: trees=%d sample_size=%d duration=%.3fs",
                self._forest.n_trees,
                self._forest.fitted_sample_size,
                duration,
            )
            return True

    # ── scoring ──────────────────────────────────────────────────

    def score_transactions(
        self,
        targets: Sequence[Transaction],
        context: Optional[Sequence[Transaction]] = None,
    ) -> list[tuple[Transaction, float]]:
        """Score ``targets``; frequencies are counted over ``context``.

        Raises:
            ModelNotTrainedError: no model has been fitted yet.
        """
        context = targets if context is None else context
        if not targets:
            return []
        matrix = build_feature_matrix(
            targets, context, FrequencyTables.from_transactions(context)
        )
        scores = self._forest.score_samples(matrix)
        telemetry.record_scores(scores)
        return [(t, float(s)) for t, s in zip(targets, scores)]

    def detect_anomalies(
        self,
        user_id: str,
        transactions: Iterable[TransactionLike],
        detected_at: Optional[datetime] = None,
    ) -> list[Anomaly]:
        """Score the user's most recent transactions and report the outliers.

        Trains a model from ``transactions`` first if none exists.  Returns an
        empty list when there is still no model (too little history).
        """
        transactions = coerce_transactions(transactions)
        detected_at = detected_at or utc_now()
        tracer = trace.get_tracer(__name__)

        with tracer.start_as_current_span(
            "detect spending anomalies",
            attributes={"transactions.count": len(transactions)},
        ) as span:
            with self._lock:
                if not self.is_model_trained:
                    self.train_model(transactions)
            if not self.is_model_trained:
                logger.warning(
                    "No anomaly model available for user %s; returning no anomalies",
                    user_id,
                )
                return []

            recent = sorted(
                (t for t in transactions if t.user_id == user_id),
                key=lambda t: t.timestamp,
                reverse=True,
            )[: self.config.recent_transaction_limit]

            anomalies = [
                self._create_anomaly(transaction, score, detected_at)
                for transaction, score in self.score_transactions(recent, transactions)
                if score > self.config.anomaly_threshold
            ]

            span.set_attribute("transactions.analyzed", len(recent))
            span.set_attribute("anomalies.count", len(anomalies))
            telemetry.record_anomalies("isolation_forest", anomalies)
            logger.info(
                "Anomaly detection completed for user %s: analyzed=%d anomalies=%d",
                user_id,
                len(recent),
                len(anomalies),
            )
            return anomalies

    def _severity(self, score: float) -> Severity:
        if score > self.config.high_severity_threshold:
            return Severity.HIGH
        if score > self.config.medium_severity_threshold:
            return Severity.MEDIUM
        return Severity.LOW

    def _create_anomaly(
        self, transaction: Transaction, score: float, detected_at: datetime
    ) -> Anomaly:
        severity = self._severity(score)
        prefix = {
            Severity.HIGH: "Highly unusual transaction",
            Severity.MEDIUM: "Moderately unusual transaction",
            Severity.LOW: "Unusual transaction",
        }[severity]
        return Anomaly(
            id=f"anomaly-{transaction.id}-{int(detected_at.timestamp() * 1000)}",
            user_id=transaction.user_id,
            transaction_id=transaction.id,
            type=AnomalyType.AMOUNT,
            severity=severity,
            description=f"{prefix}: {transaction.label} ({format_amount(transaction)})",
            detected_at=detected_at,
        )
