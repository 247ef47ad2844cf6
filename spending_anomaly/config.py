"""
Engine configuration.

All options have defaults; a host process can override any of them through
``SPENDING_ENGINE_*`` environment variables via :meth:`EngineConfig.from_env`.
"""

from __future__ import annotations

import os
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

ENV_PREFIX = "SPENDING_ENGINE_"


class EngineConfig(BaseModel):
    """Tunable parameters for model training, scoring and rule checks."""

    model_config = ConfigDict(frozen=True)

    # Isolation Forest
    num_trees: int = Field(default=100, ge=1)
    sample_size: int = Field(default=256, ge=2)
    max_tree_depth: int = Field(default=10, ge=1)
    random_seed: Optional[int] = Field(
        default=None, description="Seed for tree building and bootstrap sampling"
    )

    # Anomaly Detector
    anomaly_threshold: float = Field(default=0.6, gt=0, lt=1)
    medium_severity_threshold: float = Field(default=0.7, gt=0, lt=1)
    high_severity_threshold: float = Field(default=0.8, gt=0, lt=1)
    min_training_transactions: int = Field(default=10, ge=1)
    recent_transaction_limit: int = Field(default=100, ge=1)

    # Baseline Alerter
    daily_baseline_multiplier: float = Field(default=2.0, gt=0)
    category_baseline_multiplier: float = Field(default=3.0, gt=0)

    # Pattern Analyzer
    trend_change_threshold: float = Field(default=0.10, ge=0)
    min_trend_transactions: int = Field(default=4, ge=2)
    min_variation_transactions: int = Field(default=3, ge=2)
    confidence_saturation: int = Field(default=10, ge=1)

    @model_validator(mode="after")
    def _check_severity_order(self) -> "EngineConfig":
        if not (
            self.anomaly_threshold
            <= self.medium_severity_threshold
            <= self.high_severity_threshold
        ):
            raise ValueError(
                "expected anomaly_threshold <= medium_severity_threshold "
                "<= high_severity_threshold"
            )
        return self

    @classmethod
    def from_env(cls, prefix: str = ENV_PREFIX, **overrides) -> "EngineConfig":
        """Build a config from ``<prefix><FIELD_NAME>`` environment variables.

        Explicit keyword ``overrides`` win over the environment.
        """
        values = {}
        for name in cls.model_fields:
            raw = os.environ.get(f"{prefix}{name.upper()}")
            if raw is not None and raw != "":
                values[name] = raw
        values.update(overrides)
        return cls.model_validate(values)
