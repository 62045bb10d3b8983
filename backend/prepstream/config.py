from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Pocketbase (document store)
    pocketbase_url: str = "http://pocketbase:8090"
    pocketbase_admin_email: Optional[str] = None
    pocketbase_admin_password: Optional[str] = None

    # Redis (stream store)
    redis_url: str = "redis://redis:6379"

    # LLM Providers
    llm_provider: str = "openrouter"  # openrouter, openai, anthropic
    openrouter_api_key: Optional[str] = None

    # Platform model tiers
    tier_high_model: Optional[str] = None
    tier_high_fallback: Optional[str] = None
    tier_medium_model: Optional[str] = None
    tier_medium_fallback: Optional[str] = None
    tier_low_model: Optional[str] = None
    tier_low_fallback: Optional[str] = None
    llm_temperature: float = 0.7
    llm_max_tokens: int = 4096

    # Streaming
    stream_ttl_seconds: int = 60 * 5
    stream_terminal_ttl_seconds: int = 30
    stream_throttle_ms: int = 150
    stream_channel_size: int = 64

    # App settings
    log_level: str = "INFO"
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    @field_validator("pocketbase_url")
    @classmethod
    def pocketbase_url_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("POCKETBASE_URL is required and cannot be empty")
        return v

    @field_validator("redis_url")
    @classmethod
    def redis_url_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("REDIS_URL is required and cannot be empty")
        return v

    @field_validator("stream_terminal_ttl_seconds")
    @classmethod
    def terminal_ttl_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("STREAM_TERMINAL_TTL_SECONDS must be positive")
        return v

    def get_tier_model(self, tier: str) -> tuple[Optional[str], Optional[str]]:
        """Return (primary, fallback) model names configured for a tier."""
        return (
            getattr(self, f"tier_{tier}_model", None),
            getattr(self, f"tier_{tier}_fallback", None),
        )

    def get_llm_model(self, model: str) -> str:
        """
        Get the model string for pydantic-ai.

        Returns model in format: "provider:model". OpenRouter models are
        built explicitly by the driver and never reach this method.
        """
        if ":" in model:
            return model
        return f"{self.llm_provider}:{model}"


@lru_cache
def get_settings() -> Settings:
    return Settings()
