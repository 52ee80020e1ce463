"""Engine configuration models.

Pydantic v2 models for the store location, logging, learning windows and
insight-generation thresholds. Load from YAML with ``EngineConfig.from_yaml``:

    store:
      path: ~/.cadence/learning.db
    logging:
      level: DEBUG
      format: json
    insights:
      default_timeout_ms: 5000
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, model_validator

DEFAULT_STORE_PATH = Path.home() / ".cadence" / "learning.db"


class StoreConfig(BaseModel):
    """SQLite persistence gateway settings."""

    path: Path = Field(
        default=DEFAULT_STORE_PATH,
        description="SQLite database file shared by all hook-runner processes",
    )
    busy_timeout_ms: int = Field(
        default=30000,
        ge=0,
        description="How long a writer waits for a competing transaction before failing",
    )

    @model_validator(mode="after")
    def _expand_user(self) -> StoreConfig:
        self.path = self.path.expanduser()
        return self


class LoggingConfig(BaseModel):
    """Structured logging settings passed to configure_logging()."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "console", "both"] = "console"
    file: Path | None = Field(
        default=None,
        description="Log file for JSON output; required when format is 'both'",
    )

    @model_validator(mode="after")
    def _require_file_for_both(self) -> LoggingConfig:
        if self.format == "both" and self.file is None:
            raise ValueError("logging.file is required when logging.format is 'both'")
        return self


class LearningConfig(BaseModel):
    """Windows and limits for online pattern learning."""

    outlier_window: int = Field(
        default=20,
        ge=5,
        description="Recent executions of the same hook compared against each new record",
    )
    anomaly_history: int = Field(
        default=50,
        ge=10,
        description="Recent metric samples used as history for anomaly detection",
    )
    adaptation_history_limit: int = Field(
        default=100,
        ge=1,
        description="Maximum adaptation entries kept per pattern",
    )
    min_executions_for_analysis: int = Field(
        default=10,
        ge=1,
        description="Patterns with fewer observations are ignored by insight analysis",
    )
    min_insight_confidence: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Generated insights below this confidence are discarded",
    )


class InsightConfig(BaseModel):
    """Thresholds used when deriving insights from patterns and metrics."""

    default_timeout_ms: float = Field(default=3000.0, gt=0)
    timeout_reduction_trigger: float = Field(
        default=0.7,
        gt=0.0,
        le=1.0,
        description="Propose a timeout only when the recommendation is below this "
        "fraction of the current timeout",
    )
    false_positive_threshold: float = Field(default=0.2, ge=0.0, le=1.0)
    degradation_threshold_pct: float = Field(default=25.0, ge=0.0)
    correlation_threshold: float = Field(default=0.8, ge=0.0, le=1.0)
    unapplied_expiry_days: int = Field(default=30, ge=1)


class EngineConfig(BaseModel):
    """Top-level configuration for a LearningEngine."""

    store: StoreConfig = Field(default_factory=StoreConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    learning: LearningConfig = Field(default_factory=LearningConfig)
    insights: InsightConfig = Field(default_factory=InsightConfig)

    @classmethod
    def from_yaml(cls, path: Path) -> EngineConfig:
        """Load configuration from a YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f)
        return cls.model_validate(data or {})

    @classmethod
    def from_yaml_string(cls, yaml_str: str) -> EngineConfig:
        """Load configuration from a YAML string."""
        data = yaml.safe_load(yaml_str)
        return cls.model_validate(data or {})


__all__ = [
    "DEFAULT_STORE_PATH",
    "EngineConfig",
    "InsightConfig",
    "LearningConfig",
    "LoggingConfig",
    "StoreConfig",
]
