"""
Feature extraction for the Isolation Forest.

Each transaction becomes a fixed-order numeric vector::

    [amount, day_of_week, hour_of_day, merchant_frequency, category_frequency]

Merchant and category frequencies are counts over the *whole* transaction
set handed in, not just the transactions being scored.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from enum import IntEnum
from typing import Optional

import numpy as np

from spending_anomaly.models import Transaction


class Feature(IntEnum):
    """Column index of each feature in a feature vector."""

    AMOUNT = 0
    DAY_OF_WEEK = 1
    HOUR_OF_DAY = 2
    MERCHANT_FREQUENCY = 3
    CATEGORY_FREQUENCY = 4


N_FEATURES = len(Feature)


@dataclass(frozen=True)
class SpendingDataPoint:
    """Derived, per-transaction feature record."""

    amount: float
    category: str
    timestamp: datetime
    day_of_week: int  # 0 = Sunday
    hour_of_day: int
    merchant_frequency: int
    category_frequency: int

    def as_vector(self) -> np.ndarray:
        return np.array(
            [
                self.amount,
                self.day_of_week,
                self.hour_of_day,
                self.merchant_frequency,
                self.category_frequency,
            ],
            dtype=np.float64,
        )


@dataclass(frozen=True)
class FrequencyTables:
    merchants: Counter
    categories: Counter

    @classmethod
    def from_transactions(cls, transactions: Sequence[Transaction]) -> "FrequencyTables":
        # A missing merchant is its own bucket under the empty-string key
        return cls(
            merchants=Counter(t.merchant or "" for t in transactions),
            categories=Counter(t.category for t in transactions),
        )


def build_data_point(
    transaction: Transaction,
    transactions: Sequence[Transaction],
    tables: Optional[FrequencyTables] = None,
) -> SpendingDataPoint:
    """Build the feature record for ``transaction`` within ``transactions``.

    ``tables`` can be passed to reuse frequency counts across a batch; it
    must have been built from the same ``transactions``.
    """
    tables = tables or FrequencyTables.from_transactions(transactions)
    ts = transaction.timestamp
    return SpendingDataPoint(
        amount=float(transaction.amount),
        category=transaction.category,
        timestamp=ts,
        day_of_week=(ts.weekday() + 1) % 7,
        hour_of_day=ts.hour,
        merchant_frequency=tables.merchants.get(transaction.merchant or "", 0),
        category_frequency=tables.categories.get(transaction.category, 0),
    )


def build_feature_matrix(
    targets: Sequence[Transaction],
    transactions: Sequence[Transaction],
    tables: Optional[FrequencyTables] = None,
) -> np.ndarray:
    """Stack the feature vectors of ``targets`` into an ``(n, 5)`` matrix."""
    tables = tables or FrequencyTables.from_transactions(transactions)
    if not targets:
        return np.empty((0, N_FEATURES), dtype=np.float64)
    return np.vstack(
        [build_data_point(t, transactions, tables).as_vector() for t in targets]
    )
