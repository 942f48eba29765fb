from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings validated via Pydantic.

    Values are loaded from environment variables and/or a .env file.
    """

    # API Keys
    anthropic_api_key: str = ""

    # Deployments (empty name = not configured)
    standard_deployment: str = "claude-sonnet-4-20250514"
    standard_token_limit: int = Field(default=200_000, gt=0)
    extended_deployment: str = ""
    extended_token_limit: int = Field(default=1_000_000, gt=0)

    # Auto strategy thresholds (estimated transcript tokens)
    basic_max_tokens: int = Field(default=15_000, gt=0)
    hybrid_max_tokens: int = Field(default=50_000, gt=0)

    # Evaluation pass, 0-10 scale
    evaluation_quality_threshold: float = Field(default=7.0, ge=0, le=10)

    # Model call policy
    call_max_attempts: int = Field(default=3, ge=1)
    call_validation_retries: int = Field(default=1, ge=0)
    call_backoff_seconds: float = Field(default=2.0, ge=0)
    call_max_backoff_seconds: float = Field(default=30.0, ge=0)
    call_timeout_seconds: float = Field(default=180.0, gt=0)
    max_concurrent_calls: int = Field(default=3, ge=1)
    max_output_tokens: int = Field(default=16_000, gt=0)
    advanced_max_section_calls: int = Field(default=10, ge=1)

    # Post-processing
    link_window_seconds: float = Field(default=300.0, ge=0)
    evidence_top_n: int = Field(default=3, ge=1)

    # App config
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance.

    Gracefully handles missing .env files (e.g. in CI/testing) by falling
    back to environment variables and defaults.
    """
    try:
        return Settings()
    except Exception:
        # If .env is missing or unreadable, build settings from env vars only.
        return Settings(_env_file=None)  # type: ignore[call-arg]


settings = get_settings()
