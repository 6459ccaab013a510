# src/config/settings.py — v1
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for all deployment-specific settings: limits,
per-call deadlines, scoring weights, progress estimates, storage, logging.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ANALYST_DIMENSIONS = ("hook", "structure", "emotional", "cta")

_DEFAULT_WEIGHTS: dict[str, dict[str, float]] = {
    "news": {"hook": 0.35, "structure": 0.25, "emotional": 0.2, "cta": 0.2},
    "instagram_reel": {"hook": 0.4, "structure": 0.2, "emotional": 0.25, "cta": 0.15},
    "custom_script": {"hook": 0.25, "structure": 0.25, "emotional": 0.25, "cta": 0.25},
}

# scout, scorer, analyst, architect, writer, qc, optimizer, gate
_DEFAULT_STAGE_ESTIMATES = [5.0, 15.0, 20.0, 20.0, 40.0, 45.0, 60.0, 1.0]


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Storage ===
    db_path: str = "~/.scriptconveyor/conveyor.db"

    # === LLM ===
    llm_provider: str = "anthropic"
    llm_model: str = "claude-sonnet-4-20250514"
    llm_synthesis_model: str = ""
    llm_temperature: float = 0.4
    llm_max_tokens: int = 2048
    anthropic_api_key: str = ""

    # === Per-call limits ===
    llm_call_timeout_s: float = 60.0
    malformed_repair_attempts: int = 1
    stage_timeout_auto_retries: int = 1

    # === Limits ===
    max_retries: int = 3
    max_revisions: int = 3
    max_qc_iterations: int = 2
    daily_limit_default: int = 10

    # === Scoring ===
    score_threshold: int = 70
    min_source_chars: int = 100
    verdict_viral: int = 90
    verdict_strong: int = 70
    verdict_moderate: int = 50
    analyst_weights: dict[str, dict[str, float]] = Field(
        default_factory=lambda: {k: dict(v) for k, v in _DEFAULT_WEIGHTS.items()}
    )

    # === Progress ===
    stage_duration_estimates_s: list[float] = Field(
        default_factory=lambda: list(_DEFAULT_STAGE_ESTIMATES)
    )

    # === Analysis cache ===
    analysis_cache_capacity: int = 128
    analysis_cache_ttl_s: float = 3600.0

    # === Workers ===
    worker_concurrency: int = 2
    lease_ttl_s: float = 1800.0

    # === Scheduler ===
    scheduler_timezone: str = "UTC"
    daily_reset_hour: int = 0
    daily_reset_minute: int = 0

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator(
        "max_retries",
        "max_revisions",
        "max_qc_iterations",
        "malformed_repair_attempts",
        "stage_timeout_auto_retries",
        "daily_limit_default",
    )
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("limits must be >= 0")
        return v

    @field_validator("daily_reset_hour")
    @classmethod
    def validate_hour(cls, v: int) -> int:
        if not 0 <= v <= 23:
            raise ValueError("daily_reset_hour must be in 0..23")
        return v

    @field_validator("daily_reset_minute")
    @classmethod
    def validate_minute(cls, v: int) -> int:
        if not 0 <= v <= 59:
            raise ValueError("daily_reset_minute must be in 0..59")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        for content_type, weights in self.analyst_weights.items():
            if set(weights) != set(ANALYST_DIMENSIONS):
                errors.append(
                    f"ANALYST_WEIGHTS[{content_type}] must define {', '.join(ANALYST_DIMENSIONS)}"
                )
                continue
            if any(w < 0 for w in weights.values()):
                errors.append(f"ANALYST_WEIGHTS[{content_type}] must be non-negative")
            elif abs(sum(weights.values()) - 1.0) > 1e-6:
                errors.append(f"ANALYST_WEIGHTS[{content_type}] must sum to 1")

        if not (100 >= self.verdict_viral > self.verdict_strong > self.verdict_moderate >= 0):
            errors.append("VERDICT thresholds must be strictly decreasing within 0..100")

        if any(e < 0 for e in self.stage_duration_estimates_s):
            errors.append("STAGE_DURATION_ESTIMATES_S must be non-negative")

        if self.llm_call_timeout_s <= 0:
            errors.append("LLM_CALL_TIMEOUT_S must be > 0")

        try:
            ZoneInfo(self.scheduler_timezone)
        except (ZoneInfoNotFoundError, ValueError):
            errors.append(f"SCHEDULER_TIMEZONE {self.scheduler_timezone!r} is unknown")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    def weights_for(self, content_type: str) -> dict[str, float]:
        """Analyst weights for a content type (equal weights if unknown)."""
        weights = self.analyst_weights.get(content_type)
        if weights is None:
            return {d: 1.0 / len(ANALYST_DIMENSIONS) for d in ANALYST_DIMENSIONS}
        return weights

    @property
    def synthesis_model(self) -> str:
        return self.llm_synthesis_model or self.llm_model


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or per-run config).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
