"""Configuration management for the Artemis orchestration service."""

from functools import lru_cache

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

    # Supabase configuration (required)
    SUPABASE_URL: str = Field(..., description="Supabase project URL")
    SUPABASE_SERVICE_ROLE_KEY: str = Field(..., description="Supabase service role key")

    # OpenAI configuration (required)
    OPENAI_API_KEY: str = Field(..., description="OpenAI API key")

    # Environment
    ARTEMIS_ENV: str = Field(default="dev", description="Environment: dev, staging, prod, test")
    FRONTEND_URLS: str = Field(
        default="http://localhost:5173", description="Comma-separated origins allowed by CORS"
    )

    # Reasoning engine
    ORCHESTRATION_MODEL: str = Field(
        default="gpt-4o-mini", description="Model producing the orchestration decision"
    )
    SUMMARY_MODEL: str = Field(default="gpt-4o-mini", description="Model for UI summary messages")
    TITLE_MODEL: str = Field(default="gpt-4o-mini", description="Model for session titles")
    HISTORY_WINDOW: int = Field(
        default=20, description="Number of prior messages passed to the reasoning engine"
    )

    # Generative UI provider (OpenAI-compatible endpoint)
    UI_GENERATOR_API_KEY: str = Field(default="", description="API key for the UI generator")
    UI_GENERATOR_BASE_URL: str = Field(
        default="https://api.thesys.dev/v1/embed", description="UI generator base URL"
    )
    UI_GENERATOR_MODEL: str = Field(
        default="c1/anthropic/claude-sonnet-4/v-20250930", description="UI generator model"
    )
    UI_GENERATOR_MAX_TOKENS: int = Field(default=4096, description="Max tokens per UI generation")

    # Business system (ERP)
    ERP_BASE_URL: str = Field(default="http://localhost:3002/api", description="ERP API base URL")
    ERP_TIMEOUT_SECONDS: float = Field(default=30.0, description="ERP request timeout")

    # UI snapshot history
    SNAPSHOT_SOFT_LIMIT: int = Field(
        default=50, description="Snapshots per branch before a warning is logged"
    )
    SNAPSHOT_APPEND_RETRIES: int = Field(
        default=3, description="Attempts for compare-and-append on a contended branch"
    )

    # Merge resolver
    MERGE_CONFIDENCE_THRESHOLD: float = Field(
        default=0.6, description="Below this confidence an ambiguous merge falls back to REPLACE"
    )

    # Rate limiting
    CHAT_REQUESTS_PER_MINUTE: int = Field(default=20, description="Sustained turns per minute")
    CHAT_BURST_SIZE: int = Field(default=30, description="Burst size for turn requests")

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.FRONTEND_URLS.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance

    Raises:
        ValidationError: If required environment variables are missing
    """
    return Settings()
