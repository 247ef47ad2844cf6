"""
Records exchanged with the engine's collaborators.

``Transaction`` is the read-only input supplied by the data-access layer;
``Anomaly`` and ``SpendingPattern`` are the outputs handed to notification
and reporting.  Field names are snake_case in Python and accept/emit the
camelCase keys used by the document store (``userId``, ``detectedAt``, ...).
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class _Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Input ────────────────────────────────────────────────────────


class Transaction(_Record):
    """A single expense. Only positive amounts are analysed."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    id: str
    user_id: str
    amount: float = Field(gt=0, allow_inf_nan=False)
    category: str
    timestamp: datetime
    merchant: Optional[str] = None
    description: str = ""
    currency: Optional[str] = None
    subcategory: Optional[str] = None
    location: Optional[str] = None

    @field_validator("timestamp")
    @classmethod
    def _normalise_timestamp(cls, value: datetime) -> datetime:
        return to_utc(value)

    @property
    def label(self) -> str:
        """Human-readable name used in anomaly descriptions."""
        return self.description or self.merchant or self.category


# ── Outputs ──────────────────────────────────────────────────────


class AnomalyType(str, Enum):
    AMOUNT = "amount"
    FREQUENCY = "frequency"
    CATEGORY = "category"
    LOCATION = "location"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Trend(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class Anomaly(_Record):
    """A detected anomaly. ``is_resolved`` is managed by collaborators."""

    id: str
    user_id: str
    transaction_id: str = ""
    type: AnomalyType
    severity: Severity
    description: str
    detected_at: datetime = Field(default_factory=utc_now)
    is_resolved: bool = False


class SpendingPattern(_Record):
    """Per-category spending summary for one user, recomputed every run."""

    user_id: str
    category: str
    average_monthly: float = Field(ge=0)
    trend: Trend
    anomaly_score: float = Field(ge=0, description="Coefficient of variation")
    last_analyzed: datetime = Field(default_factory=utc_now)
    confidence: float = Field(ge=0, le=1)


class AnalysisReport(_Record):
    """Combined output of the three analysis pipelines for one user."""

    user_id: str
    generated_at: datetime = Field(default_factory=utc_now)
    anomalies: list[Anomaly] = Field(default_factory=list)
    threshold_alerts: list[Anomaly] = Field(default_factory=list)
    patterns: list[SpendingPattern] = Field(default_factory=list)
