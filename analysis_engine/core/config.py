"""Configuration management for the document analysis engine."""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file (only if accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    # In sandboxed environments, .env might not be accessible
    # Environment variables should be set directly
    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Anthropic configuration (only required by the live completion client)
    ANTHROPIC_API_KEY: str = Field(default="", description="Anthropic API key")

    # Environment
    ANALYSIS_ENGINE_ENV: str = Field(default="dev", description="Environment: dev, staging, prod")

    # Completion models
    ANALYSIS_PRIMARY_MODEL: str = Field(
        default="claude-sonnet-4-6", description="Model tried first for every analysis task"
    )
    ANALYSIS_FALLBACK_MODEL: str = Field(
        default="claude-haiku-4-5-20251001",
        description="Model tried when the primary model call fails",
    )
    ANALYSIS_MAX_TOKENS: int = Field(default=4096, description="Max output tokens per completion")

    # Per-stage input budgets (characters of document text sent to the model)
    TLDR_MAX_CHARS: int = Field(default=4000, description="Text budget for the TLDR stage")
    EXECUTIVE_SUMMARY_MAX_CHARS: int = Field(
        default=6000, description="Text budget for the executive summary stage"
    )
    ENTITY_MAX_CHARS: int = Field(default=5000, description="Text budget for entity extraction")
    SIGNAL_MAX_CHARS: int = Field(default=3000, description="Text budget for signal analysis")
    RELATIONSHIP_MAX_CHARS: int = Field(
        default=4000, description="Text budget for relationship detection (entity list excluded)"
    )
    SECTION_MAX_CHARS: int = Field(default=2000, description="Text budget per summarized section")
    RECOMMENDATION_SAMPLE_CHARS: int = Field(
        default=1000, description="Text sample sent with the visualization context"
    )

    # Section walker
    SECTION_SUMMARY_MIN_CHARS: int = Field(
        default=100, description="Sections at or below this length are used verbatim as summary"
    )

    # TLDR retry policy
    TLDR_MAX_RETRIES: int = Field(default=2, description="Retries after the first TLDR attempt")
    TLDR_RETRY_INITIAL_DELAY: float = Field(
        default=1.0, description="Seconds before the first TLDR retry (doubles per attempt)"
    )

    # Visualization recommendations
    MAX_RECOMMENDATIONS: int = Field(default=5, description="Max visualization recommendations")


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance

    Raises:
        ValidationError: If environment variables have invalid values
    """
    return Settings()
