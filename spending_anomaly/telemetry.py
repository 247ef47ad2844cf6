"""
Engine telemetry.

Domain metrics that sit on top of ``spending_anomaly.observability``.
Recording helpers never raise into the analysis code.
"""

import logging

from spending_anomaly.observability import create_counter, create_gauge, create_histogram

logger = logging.getLogger("telemetry")

# ── Model lifecycle ──────────────────────────────────────────────

MODEL_TRAININGS_TOTAL = create_counter(
    "model_trainings_total",
    "Isolation Forest training attempts by outcome",
    ["outcome"],
)

MODEL_TRAINING_DURATION = create_histogram(
    "model_training_duration_seconds",
    "Time spent fitting an Isolation Forest",
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

# ── Scoring ──────────────────────────────────────────────────────

TRANSACTIONS_SCORED_TOTAL = create_counter(
    "transactions_scored_total",
    "Total number of transactions scored by the Isolation Forest",
)

TRANSACTION_ANOMALY_SCORE = create_histogram(
    "transaction_anomaly_score",
    "Distribution of Isolation Forest anomaly scores (higher = more anomalous)",
    buckets=[0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9, 1.0],
)

ANOMALIES_DETECTED_TOTAL = create_counter(
    "anomalies_detected_total",
    "Anomalies raised by source, type and severity",
    ["source", "type", "severity"],
)

# ── Input quality / patterns ─────────────────────────────────────

INVALID_TRANSACTIONS_TOTAL = create_counter(
    "invalid_transactions_total",
    "Transactions skipped because they failed validation",
)

SPENDING_PATTERNS_TOTAL = create_counter(
    "spending_patterns_analyzed_total",
    "Per-category spending patterns computed, by trend",
    ["trend"],
)

# ── Model cache ──────────────────────────────────────────────────

CACHED_USER_MODELS = create_gauge(
    "cached_user_models",
    "Per-user detectors currently held by the engine",
)


def record_training(outcome: str, duration: float | None = None) -> None:
    try:
        MODEL_TRAININGS_TOTAL.labels(outcome=outcome).inc()
        if duration is not None:
            MODEL_TRAINING_DURATION.observe(duration)
    except Exception as exc:
        logger.debug("Failed to record training metrics: %s", exc)


def record_scores(scores) -> None:
    try:
        for score in scores:
            TRANSACTION_ANOMALY_SCORE.observe(score)
        TRANSACTIONS_SCORED_TOTAL.inc(len(scores))
    except Exception as exc:
        logger.debug("Failed to record score metrics: %s", exc)


def record_anomalies(source: str, anomalies) -> None:
    try:
        for anomaly in anomalies:
            ANOMALIES_DETECTED_TOTAL.labels(
                source=source,
                type=anomaly.type.value,
                severity=anomaly.severity.value,
            ).inc()
    except Exception as exc:
        logger.debug("Failed to record anomaly metrics: %s", exc)


def record_invalid_transaction() -> None:
    try:
        INVALID_TRANSACTIONS_TOTAL.inc()
    except Exception as exc:
        logger.debug("Failed to record invalid-transaction metric: %s", exc)


def record_patterns(patterns) -> None:
    try:
        for pattern in patterns:
            SPENDING_PATTERNS_TOTAL.labels(trend=pattern.trend.value).inc()
    except Exception as exc:
        logger.debug("Failed to record pattern metrics: %s", exc)


def record_cached_models(count: int) -> None:
    try:
        CACHED_USER_MODELS.set(count)
    except Exception as exc:
        logger.debug("Failed to record model cache size: %s", exc)
