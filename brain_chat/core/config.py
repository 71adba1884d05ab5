"""Configuration management for the Business Brain chat engine."""

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

    # Supabase configuration (required)
    SUPABASE_URL: str = Field(..., description="Supabase project URL")
    SUPABASE_SERVICE_ROLE_KEY: str = Field(..., description="Supabase service role key")

    # OpenAI configuration (required for generation and intent analysis)
    OPENAI_API_KEY: str = Field(..., description="OpenAI API key")

    # Anthropic configuration (optional, enables context summaries)
    ANTHROPIC_API_KEY: str | None = Field(default=None, description="Anthropic API key")

    # Environment
    BRAIN_CHAT_ENV: str = Field(default="dev", description="Environment: dev, staging, prod")

    # Models
    CHAT_MODEL: str = Field(default="gpt-4o", description="Model for answer generation")
    INTENT_MODEL: str = Field(default="gpt-4o-mini", description="Model for intent analysis")
    SUMMARIZATION_MODEL: str = Field(
        default="claude-haiku-4-5-20251001", description="Model for rolling context summaries"
    )
    CHAT_TEMPERATURE: float = Field(default=0.3, description="Sampling temperature for answers")
    MAX_RESPONSE_TOKENS: int = Field(default=2000, description="Max tokens per generated answer")

    # Card loading
    EXCERPT_LENGTH: int = Field(default=500, description="Chars kept for excerpt-tier cards")
    HIGH_CARD_RELEVANCE: int = Field(
        default=80, description="Relevance at which a loaded card stays active without a citation"
    )

    # Conversation history
    MAX_HISTORY_MESSAGES: int = Field(default=10, description="Prior messages replayed to the model")
    ACTIVE_CARDS_DECAY_MESSAGES: int = Field(
        default=10, description="Recent messages scanned when retaining active cards"
    )
    CONTEXT_SUMMARY_THRESHOLD: int = Field(
        default=10, description="Message count at which the first summary is written"
    )
    CONTEXT_SUMMARY_INTERVAL: int = Field(
        default=5, description="Message-count interval between summary refreshes"
    )
    CONTEXT_SUMMARY_MAX_MESSAGES: int = Field(
        default=20, description="Max recent messages fed to the summarizer"
    )

    # Collaborator retry policy
    LLM_MAX_RETRIES: int = Field(default=2, description="Retries after the first failed LLM call")
    LLM_INITIAL_RETRY_DELAY: float = Field(default=1.0, description="First backoff delay in seconds")

    # Rate limiting
    CHAT_RATE_LIMIT_PER_MINUTE: int = Field(default=10, description="Sustained chat turns per minute")
    CHAT_RATE_LIMIT_BURST: int = Field(default=15, description="Burst size for chat turns")


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
