"""
Configuration management for the Exam Grading Engine.

Uses Pydantic Settings for type-safe configuration loading from environment variables.
All configuration is validated at startup to fail fast on misconfiguration.
"""

import logging
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Every variable is read with the ``EXAM_GRADING_`` prefix, for example
    ``EXAM_GRADING_LOW_CONFIDENCE_THRESHOLD=0.75``.
    """

    model_config = SettingsConfigDict(
        env_prefix="EXAM_GRADING_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Review Configuration
    # ==========================================================================
    low_confidence_threshold: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="AI-assisted scores below this confidence are flagged for review",
    )

    # ==========================================================================
    # External Scorer Configuration
    # ==========================================================================
    ai_scorer_timeout_seconds: float = Field(
        default=30.0,
        gt=0.0,
        le=600.0,
        description="Upper bound for a single external AI scorer call",
    )

    # ==========================================================================
    # Reporting Configuration
    # ==========================================================================
    score_decimal_places: int = Field(
        default=2,
        ge=0,
        le=6,
        description="Decimal places used when reporting averages and ratios",
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level name (DEBUG, INFO, WARNING, ERROR)",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalise the level name and reject unknown levels."""
        level = v.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {v}")
        return level


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses LRU cache to ensure settings are only loaded once.
    """
    return Settings()
