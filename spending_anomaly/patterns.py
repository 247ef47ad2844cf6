"""
Per-category spending patterns.

A simple, explainable companion to the Isolation Forest: monthly averages,
a first-half/second-half trend and the coefficient of variation of amounts.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta
from typing import Optional

import numpy as np

from spending_anomaly import telemetry
from spending_anomaly.config import EngineConfig
from spending_anomaly.models import SpendingPattern, Transaction, Trend, utc_now
from spending_anomaly.validation import TransactionLike, coerce_transactions

logger = logging.getLogger("patterns")

MONTH = timedelta(days=30)


def monthly_average(transactions: Sequence[Transaction]) -> float:
    """Total spend divided by the months spanned (at least one month)."""
    if not transactions:
        return 0.0
    timestamps = [t.timestamp for t in transactions]
    months = max(1.0, (max(timestamps) - min(timestamps)) / MONTH)
    return sum(t.amount for t in transactions) / months


def classify_trend(
    amounts: Sequence[float],
    change_threshold: float = 0.10,
    min_transactions: int = 4,
) -> Trend:
    """Compare the average of the first half of ``amounts`` with the second.

    ``amounts`` must already be in chronological order.
    """
    if len(amounts) < min_transactions:
        return Trend.STABLE
    middle = len(amounts) // 2
    first = float(np.mean(amounts[:middle]))
    second = float(np.mean(amounts[middle:]))
    change = (second - first) / first
    if change > change_threshold:
        return Trend.INCREASING
    if change < -change_threshold:
        return Trend.DECREASING
    return Trend.STABLE


def coefficient_of_variation(amounts: Sequence[float], min_transactions: int = 3) -> float:
    """Population standard deviation over mean; 0 for short series."""
    if len(amounts) < min_transactions:
        return 0.0
    values = np.asarray(amounts, dtype=np.float64)
    return float(values.std() / values.mean())


class PatternAnalyzer:
    """Summarises a user's spending per category.

    Each :class:`SpendingPattern` carries the monthly average, the trend
    between the older and newer half of the category's transactions, the
    coefficient of variation as an anomaly score and a confidence that
    grows with the number of transactions.
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()

    def analyze_category(
        self,
        user_id: str,
        category: str,
        transactions: Sequence[Transaction],
        analyzed_at: Optional[datetime] = None,
    ) -> SpendingPattern:
        ordered = sorted(transactions, key=lambda t: t.timestamp)
        amounts = [t.amount for t in ordered]
        return SpendingPattern(
            user_id=user_id,
            category=category,
            average_monthly=monthly_average(ordered),
            trend=classify_trend(
                amounts,
                self.config.trend_change_threshold,
                self.config.min_trend_transactions,
            ),
            anomaly_score=coefficient_of_variation(
                amounts, self.config.min_variation_transactions
            ),
            last_analyzed=analyzed_at or utc_now(),
            confidence=min(len(ordered) / self.config.confidence_saturation, 1.0),
        )

    def analyze_spending_patterns(
        self,
        user_id: str,
        transactions: Iterable[TransactionLike],
        analyzed_at: Optional[datetime] = None,
    ) -> list[SpendingPattern]:
        """One pattern per category the user has spent in, in first-seen order."""
        analyzed_at = analyzed_at or utc_now()
        by_category: dict[str, list[Transaction]] = {}
        for transaction in coerce_transactions(transactions):
            if transaction.user_id == user_id:
                by_category.setdefault(transaction.category, []).append(transaction)

        patterns = [
            self.analyze_category(user_id, category, group, analyzed_at)
            for category, group in by_category.items()
        ]
        telemetry.record_patterns(patterns)
        logger.debug(
            "Analyzed %d spending categories for user %s", len(patterns), user_id
        )
        return patterns
