"""Tests for the rule-based baseline alerter."""

from datetime import datetime, timedelta, timezone

import pytest

from spending_anomaly.baseline import (
    BaselineAlerter,
    _to_frame,
    category_baselines,
    daily_spending_baseline,
)
from spending_anomaly.config import EngineConfig
from spending_anomaly.models import AnomalyType, Severity, Transaction

NOW = datetime(2026, 4, 15, 18, 0, tzinfo=timezone.utc)


def _txn(tx_id, amount, days_ago, category="Food", user_id="user-1", hour=9):
    day = (NOW - timedelta(days=days_ago)).replace(hour=hour, minute=0)
    return Transaction(
        id=tx_id, user_id=user_id, amount=amount, category=category, timestamp=day
    )


def _thirty_days_of(amount=1000.0, category="Food", user_id="user-1"):
    return [
        _txn(f"{user_id}-h{d}", amount, d, category=category, user_id=user_id)
        for d in range(1, 31)
    ]


class TestBaselines:
    def test_daily_baseline_averages_days_with_spend(self):
        history = [_txn("a", 100, 1), _txn("b", 300, 1), _txn("c", 200, 5)]
        # day 1 = 400, day 5 = 200
        assert daily_spending_baseline(_to_frame(history)) == pytest.approx(300)

    def test_category_baseline_uses_active_days_only(self):
        history = [
            _txn("a", 100, 1, "Food"),
            _txn("b", 100, 1, "Food"),
            _txn("c", 400, 3, "Food"),
            _txn("d", 50, 2, "Transport"),
        ]
        baselines = category_baselines(_to_frame(history))
        assert baselines == {"Food": pytest.approx(300), "Transport": pytest.approx(50)}

    def test_empty_history(self):
        frame = _to_frame([])
        assert daily_spending_baseline(frame) == 0.0
        assert category_baselines(frame) == {}


class TestCheckSpendingThresholds:
    def test_double_daily_baseline_raises_one_high_alert(self):
        history = _thirty_days_of() + [_txn("today-1", 2100, 0)]
        alerts = BaselineAlerter().check_spending_thresholds("user-1", history, now=NOW)

        assert len(alerts) == 1
        alert = alerts[0]
        assert alert.type == AnomalyType.AMOUNT
        assert alert.severity == Severity.HIGH
        assert alert.transaction_id == "today-1"
        assert alert.user_id == "user-1"
        assert "Daily spending (2,100.00)" in alert.description
        assert alert.id == f"daily-user-1-{int(NOW.timestamp() * 1000)}"

    def test_below_double_baseline_raises_nothing(self):
        history = _thirty_days_of() + [_txn("today-1", 1900, 0)]
        assert BaselineAlerter().check_spending_thresholds("user-1", history, now=NOW) == []

    def test_category_spike_raises_medium_alert(self):
        history = (
            _thirty_days_of()
            + [_txn(f"t{d}", 100, d, category="Transport") for d in range(1, 11)]
            + [_txn("today-taxi", 450, 0, category="Transport")]
        )
        alerts = BaselineAlerter().check_spending_thresholds("user-1", history, now=NOW)

        assert len(alerts) == 1
        alert = alerts[0]
        assert alert.type == AnomalyType.CATEGORY
        assert alert.severity == Severity.MEDIUM
        assert alert.transaction_id == "today-taxi"
        assert alert.description.startswith("Spending in Transport (450.00)")
        assert alert.id.startswith("category-Transport-user-1-")

    def test_daily_and_category_alerts_together(self):
        history = _thirty_days_of() + [_txn("today-1", 5000, 0)]
        alerts = BaselineAlerter().check_spending_thresholds("user-1", history, now=NOW)
        # Food baseline = (30000 + 5000) / 31 and 5000 exceeds 3x that too
        assert [a.type for a in alerts] == [AnomalyType.AMOUNT, AnomalyType.CATEGORY]

    def test_no_spend_today(self):
        alerts = BaselineAlerter().check_spending_thresholds(
            "user-1", _thirty_days_of(), now=NOW
        )
        assert alerts == []

    def test_only_requested_user(self):
        history = _thirty_days_of() + [_txn("other-today", 9000, 0, user_id="user-2")]
        assert BaselineAlerter().check_spending_thresholds("user-1", history, now=NOW) == []

    def test_unknown_user(self):
        assert BaselineAlerter().check_spending_thresholds("nobody", _thirty_days_of(), now=NOW) == []

    def test_naive_now_is_utc(self):
        history = _thirty_days_of() + [_txn("today-1", 2100, 0)]
        naive = NOW.replace(tzinfo=None)
        alerts = BaselineAlerter().check_spending_thresholds("user-1", history, now=naive)
        assert len(alerts) == 1

    def test_custom_multiplier(self):
        history = _thirty_days_of() + [_txn("today-1", 1900, 0)]
        alerter = BaselineAlerter(EngineConfig(daily_baseline_multiplier=1.5))
        alerts = alerter.check_spending_thresholds("user-1", history, now=NOW)
        assert [a.type for a in alerts] == [AnomalyType.AMOUNT]
