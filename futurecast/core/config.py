"""Configuration management for Futurecast Engine."""

from functools import lru_cache
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file (only if accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    # In sandboxed environments, .env might not be accessible
    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Environment
    FUTURECAST_ENV: str = Field(default="dev", description="Environment: dev, staging, prod, test")

    # Provider credentials (only the provider actually used needs a key)
    OPENAI_API_KEY: str | None = Field(default=None, description="OpenAI API key")
    ANTHROPIC_API_KEY: str | None = Field(default=None, description="Anthropic API key")

    # Models
    DEFAULT_MODEL: str = Field(
        default="gpt-4o-mini", description="Model used when a scenario does not name one"
    )
    PREDICTION_MODEL: str = Field(
        default="gpt-4o-mini", description="Model for expert profile prediction"
    )

    # Expert prediction resilience
    PREDICTION_PROFILE: Literal["fast", "detailed"] = Field(
        default="detailed", description="Generator profile for expert prediction"
    )
    PREDICTION_HARD_DEADLINE_MS: int = Field(
        default=10_000, description="Wall-clock budget for one predict() call"
    )
    PREDICTION_CACHE_TTL_SECONDS: float = Field(
        default=15 * 60, description="TTL for cached expert predictions"
    )
    CIRCUIT_BREAKER_FAILURE_THRESHOLD: int = Field(
        default=2, description="Qualifying failures before the breaker opens"
    )
    CIRCUIT_BREAKER_RESET_SECONDS: float = Field(
        default=10.0, description="Seconds after the last failure before an open breaker resets"
    )

    # Pipeline
    PIPELINE_CONCURRENCY: int = Field(
        default=4, ge=1, description="Max simultaneous generator calls per analysis run"
    )

    # Persistence
    STORE_BACKEND: Literal["memory", "supabase"] = Field(
        default="memory", description="Result store backend"
    )
    SUPABASE_URL: str | None = Field(default=None, description="Supabase project URL")
    SUPABASE_SERVICE_ROLE_KEY: str | None = Field(
        default=None, description="Supabase service role key"
    )

    # Server-sent events
    SSE_PING_INTERVAL_SECONDS: float = Field(
        default=25.0, description="Keep-alive comment interval for event streams"
    )
    SSE_QUEUE_SIZE: int = Field(
        default=256, description="Buffered events per subscriber before dropping"
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance

    Raises:
        ValidationError: If an environment variable has an invalid value
    """
    return Settings()
