"""
Rule-based baseline alerts.

Compares today's spending against the user's historical averages:
  - total for the day vs. the average per day with any spend
  - per category vs. the average per day with spend in that category

Independent of the Isolation Forest; works with no trained model.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Optional

import pandas as pd
from opentelemetry import trace

from spending_anomaly import telemetry
from spending_anomaly.config import EngineConfig
from spending_anomaly.models import Anomaly, AnomalyType, Severity, Transaction, to_utc, utc_now
from spending_anomaly.validation import TransactionLike, coerce_transactions

logger = logging.getLogger("baseline")


def _to_frame(transactions: Sequence[Transaction]) -> pd.DataFrame:
    frame = pd.DataFrame(
        {
            "id": [t.id for t in transactions],
            "category": [t.category for t in transactions],
            "amount": [float(t.amount) for t in transactions],
            "timestamp": pd.to_datetime([t.timestamp for t in transactions], utc=True),
        }
    )
    frame["day"] = frame["timestamp"].dt.date
    return frame


def daily_spending_baseline(frame: pd.DataFrame) -> float:
    """Average total spend per calendar day with any spend."""
    if frame.empty:
        return 0.0
    return float(frame.groupby("day")["amount"].sum().mean())


def category_baselines(frame: pd.DataFrame) -> dict[str, float]:
    """Per category: total spend divided by the number of days with spend in it."""
    if frame.empty:
        return {}
    grouped = frame.groupby("category")
    per_day = grouped["amount"].sum() / grouped["day"].nunique()
    return {str(category): float(value) for category, value in per_day.items()}


def _overage_percent(value: float, baseline: float) -> float:
    return (value / baseline - 1.0) * 100.0


class BaselineAlerter:
    """Rule-based alerts on today's spending.

    Raises a high-severity ``amount`` alert when today's total exceeds
    ``daily_baseline_multiplier`` times the daily baseline, and a
    medium-severity ``category`` alert per category above
    ``category_baseline_multiplier`` times its own baseline.  Needs no
    trained model.
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()

    def check_spending_thresholds(
        self,
        user_id: str,
        transactions: Iterable[TransactionLike],
        now: Optional[datetime] = None,
    ) -> list[Anomaly]:
        """Raise alerts for today's spending that deviates from the baselines.

        Args:
            user_id: Only this user's transactions are considered.
            transactions: Full transaction history (any users).
            now: Evaluation time; "today" is its UTC calendar date.
        """
        now = to_utc(now) if now is not None else utc_now()
        today = now.date()

        user_transactions = [
            t for t in coerce_transactions(transactions) if t.user_id == user_id
        ]
        if not user_transactions:
            return []

        tracer = trace.get_tracer(__name__)
        with tracer.start_as_current_span(
            "check spending baselines",
            attributes={"transactions.count": len(user_transactions)},
        ) as span:
            frame = _to_frame(user_transactions)
            daily_baseline = daily_spending_baseline(frame)
            baselines = category_baselines(frame)
            todays = frame[frame["day"] == today]
            stamp = int(now.timestamp() * 1000)

            alerts = []
            today_total = float(todays["amount"].sum())
            if today_total > daily_baseline * self.config.daily_baseline_multiplier:
                alerts.append(Anomaly(
                    id=f"daily-{user_id}-{stamp}",
                    user_id=user_id,
                    transaction_id=str(todays["id"].iloc[0]),
                    type=AnomalyType.AMOUNT,
                    severity=Severity.HIGH,
                    description=(
                        f"Daily spending ({today_total:,.2f}) exceeds normal baseline "
                        f"({daily_baseline:,.2f}) by "
                        f"{_overage_percent(today_total, daily_baseline):.0f}%"
                    ),
                    detected_at=now,
                ))

            for category, baseline in baselines.items():
                in_category = todays[todays["category"] == category]
                category_total = float(in_category["amount"].sum())
                if category_total > baseline * self.config.category_baseline_multiplier:
                    alerts.append(Anomaly(
                        id=f"category-{category}-{user_id}-{stamp}",
                        user_id=user_id,
                        transaction_id=str(in_category["id"].iloc[0]),
                        type=AnomalyType.CATEGORY,
                        severity=Severity.MEDIUM,
                        description=(
                            f"Spending in {category} ({category_total:,.2f}) exceeds "
                            f"normal baseline ({baseline:,.2f}) by "
                            f"{_overage_percent(category_total, baseline):.0f}%"
                        ),
                        detected_at=now,
                    ))

            for alert in alerts:
                logger.warning(
                    "Baseline alert for user %s: %s",
                    user_id,
                    alert.description,
                    extra={"anomaly_type": alert.type.value, "severity": alert.severity.value},
                )
            span.set_attribute("alerts.count", len(alerts))
            telemetry.record_anomalies("baseline", alerts)
            return alerts
