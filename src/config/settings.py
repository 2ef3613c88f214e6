"""
Centralized settings management using pydantic-settings.

All environment variables and tunable ranking constants are defined here.
Use get_settings() to access the singleton settings instance.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Every field has a default, so the engine runs without any
    configuration. The ranking weights and constants below are the
    defaults used by the test-suite; calibrate them against real
    engagement data before relying on them in production.

    Optional environment variables:
        - ENVIRONMENT: Environment name (development, staging, production)
        - LOG_LEVEL / JSON_LOGS: Logging output
        - REDIS_URL / REDIS_ENABLED: Feed view counter storage
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Environment
    # ==========================================================================
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Minimum log level")
    json_logs: bool = Field(default=False, description="Emit JSON logs instead of console output")

    @property
    def is_development(self) -> bool:
        return self.environment.lower() in ("development", "dev", "local")

    @property
    def is_production(self) -> bool:
        return self.environment.lower() in ("production", "prod")

    @field_validator("log_level", mode="before")
    @classmethod
    def parse_log_level(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

    # ==========================================================================
    # Redis Configuration (feed view counters)
    # ==========================================================================
    redis_url: Optional[str] = Field(
        default=None,
        description="Redis connection URL for feed view counters"
    )
    redis_enabled: bool = Field(
        default=False,
        description="Store feed view records in Redis"
    )
    feed_view_key_prefix: str = Field(
        default="feedview",
        description="Key prefix for feed view records in Redis"
    )

    # ==========================================================================
    # Scoring Weights
    # ==========================================================================
    weight_category: float = Field(default=30.0, ge=0)
    weight_neighborhood: float = Field(default=15.0, ge=0)
    weight_vibe: float = Field(default=20.0, ge=0)
    weight_companion: float = Field(default=15.0, ge=0)
    weight_budget: float = Field(default=10.0, ge=0)
    weight_timing: float = Field(default=10.0, ge=0)

    # ==========================================================================
    # Feedback Adjustment
    # ==========================================================================
    feedback_window_days: int = Field(
        default=90, ge=1,
        description="MORE/LESS signals older than this are ignored"
    )
    feedback_step: float = Field(default=0.05, gt=0)
    feedback_max_adjust: float = Field(default=0.5, gt=0, lt=1)

    # ==========================================================================
    # Decay & Diversity
    # ==========================================================================
    decay_step: float = Field(default=0.15, ge=0)
    decay_hard_cap: int = Field(
        default=5, ge=0,
        description="Exclude un-engaged items seen more often than this"
    )
    category_share: float = Field(
        default=1 / 3, gt=0, le=1,
        description="Max share of a page any one category may take"
    )
    venue_share: float = Field(
        default=0.2, gt=0, le=1,
        description="Max share of a page any one venue may take"
    )
    trending_min_popularity: Optional[float] = Field(
        default=20.0, ge=0,
        description="Popularity needed for the per-page trending slot; unset disables it"
    )

    # ==========================================================================
    # Exploration
    # ==========================================================================
    exploration_rate: float = Field(default=0.10, ge=0, le=1)
    discovery_exploration_rate: float = Field(default=0.25, ge=0, le=1)
    exploration_top_categories: int = Field(
        default=3, ge=0,
        description="Categories counted as the user's profile for exploration"
    )

    # ==========================================================================
    # Feed
    # ==========================================================================
    candidate_horizon_days: int = Field(
        default=14, ge=1,
        description="How far ahead active candidates are fetched"
    )
    default_page_size: int = Field(default=20, ge=1)
    max_page_size: int = Field(default=100, ge=1)
    repository_timeout_seconds: float = Field(
        default=5.0, gt=0,
        description="Timeout for each parallel repository read"
    )
    fanout_workers: int = Field(default=6, ge=1)


@lru_cache
def get_settings() -> Settings:
    """
    Get the application settings singleton.

    Uses lru_cache to ensure only one instance is created.
    Settings are loaded from environment variables and .env file.
    """
    env_file = Path(__file__).parent.parent.parent / ".env"
    if env_file.exists():
        os.environ.setdefault("ENV_FILE", str(env_file))

    return Settings(_env_file=env_file if env_file.exists() else None)


def get_settings_for_testing(**overrides) -> Settings:
    """
    Create a settings instance for testing with optional overrides.

    This bypasses the cache to allow different settings in tests.
    """
    test_defaults = {
        "environment": "testing",
        "debug": True,
    }
    test_defaults.update(overrides)

    return Settings(_env_file=None, **test_defaults)
