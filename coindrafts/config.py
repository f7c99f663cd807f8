"""
Configuration management for the contest engine.

Values come from ``COINDRAFTS_*`` environment variables, optionally loaded
from a ``.env`` file in the working directory.
"""

from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from coindrafts.engine.backend.client import DEFAULT_BACKEND_ENDPOINT
from coindrafts.engine.oracle.client import (
    DEFAULT_ORACLE_BASE_URL,
    ORACLE_BACKOFF_SECONDS,
    ORACLE_MAX_RETRIES,
)
from coindrafts.engine.snapshots import (
    FRESHNESS_THRESHOLD_MS,
    HISTORICAL_CONCURRENCY,
    LOOKUP_WINDOW_MS,
)

load_dotenv()


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="COINDRAFTS_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Price oracle
    oracle_base_url: str = DEFAULT_ORACLE_BASE_URL
    oracle_api_key: Optional[str] = None
    oracle_timeout_seconds: float = Field(default=10.0, gt=0)
    oracle_max_retries: int = Field(default=ORACLE_MAX_RETRIES, ge=0)
    oracle_backoff_seconds: float = Field(default=ORACLE_BACKOFF_SECONDS, ge=0)

    # Contest backend
    backend_endpoint: str = DEFAULT_BACKEND_ENDPOINT
    backend_timeout_seconds: float = Field(default=10.0, gt=0)

    # Snapshots
    freshness_threshold_ms: int = Field(default=FRESHNESS_THRESHOLD_MS, ge=0)
    lookup_window_ms: int = Field(default=LOOKUP_WINDOW_MS, gt=0)
    historical_request_delay_ms: int = Field(default=100, ge=0)
    historical_concurrency: int = Field(default=HISTORICAL_CONCURRENCY, ge=1)

    # Lifecycle triggers
    trigger_max_retries: int = Field(default=2, ge=0)
    trigger_backoff_seconds: float = Field(default=0.5, ge=0)
    poll_initial_interval_seconds: float = Field(default=0.25, gt=0)
    poll_multiplier: float = Field(default=2.0, ge=1.0)
    poll_max_interval_seconds: float = Field(default=2.0, gt=0)
    poll_max_wait_seconds: float = Field(default=10.0, ge=0)

    # Logging
    log_level: str = "INFO"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


__all__ = ["Settings", "get_settings"]
