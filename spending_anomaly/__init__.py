"""
Per-user spending anomaly and trend analysis.

Provides an Isolation Forest built from scratch for scoring individual
transactions, an explainable per-category pattern analyzer, and
rule-based daily/category baseline alerts.

Usage::

    from spending_anomaly import SpendingInsightsEngine

    engine = SpendingInsightsEngine()
    anomalies = engine.detect_anomalies("user-1", transactions)
    patterns = engine.analyze_spending_patterns("user-1", transactions)
    alerts = engine.check_spending_thresholds("user-1", transactions)
"""

from .config import EngineConfig
from .errors import (
    InsufficientDataError,
    InvalidTransactionError,
    ModelNotTrainedError,
    SpendingEngineError,
)
from .models import (
    AnalysisReport,
    Anomaly,
    AnomalyType,
    Severity,
    SpendingPattern,
    Transaction,
    Trend,
)
from .isolation import IsolationForest, IsolationTree, expected_path_length
from .detector import SpendingAnomalyDetector
from .patterns import PatternAnalyzer
from .baseline import BaselineAlerter
from .engine import SpendingInsightsEngine, create_engine

from ._version import __version__

__all__ = [
    "EngineConfig",
    "SpendingEngineError",
    "InsufficientDataError",
    "InvalidTransactionError",
    "ModelNotTrainedError",
    "Transaction",
    "Anomaly",
    "AnomalyType",
    "Severity",
    "SpendingPattern",
    "Trend",
    "AnalysisReport",
    "IsolationForest",
    "IsolationTree",
    "expected_path_length",
    "SpendingAnomalyDetector",
    "PatternAnalyzer",
    "BaselineAlerter",
    "SpendingInsightsEngine",
    "create_engine",
]
