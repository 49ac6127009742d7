"""Configuration management for the IoT Oracle service."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Anthropic API Configuration
    anthropic_api_key: str = Field(..., description="Anthropic API key")
    anthropic_model: str = Field(
        default="claude-sonnet-4-20250514",
        description="Claude model to use",
    )

    # Redis Configuration
    redis_url: str = Field(default="redis://localhost:6379/0", description="Redis URL")

    # API Configuration
    api_port: int = Field(default=8000, description="API server port")
    api_host: str = Field(default="0.0.0.0", description="API server host")

    # Environment
    environment: Literal["development", "staging", "production"] = Field(
        default="development"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: Literal["json", "text"] = Field(default="json", description="Log format")

    # Assistant Configuration
    max_retries: int = Field(default=3, description="Max retries for LLM calls")
    retry_delay: float = Field(default=1.0, description="Initial retry delay in seconds")
    max_tokens: int = Field(default=8192, description="Max tokens for LLM responses")
    history_messages: int = Field(
        default=6, description="Prior messages sent to the assistant as context"
    )

    # Conversation Settings
    conversation_ttl: int = Field(
        default=7 * 24 * 3600, description="Conversation TTL in seconds"
    )
    max_conversation_length: int = Field(
        default=200, description="Max messages kept per conversation"
    )

    # Action Settings
    auto_populate_default: bool = Field(
        default=True,
        description="Auto-apply assistant actions when no preference is stored",
    )
    price_refresh_hours: int = Field(
        default=24, description="Market data older than this is refreshed"
    )
    analyze_project_complexity: bool = Field(
        default=True,
        description="Ask the analyst for sub-projects when a project is created",
    )

    # Persistence Settings
    persistence_retry_enabled: bool = Field(
        default=True, description="Queue failed remote writes for a later retry"
    )
    persistence_retry_limit: int = Field(
        default=500, description="Max queued writes before the oldest are dropped"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v_upper


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
