"""Configuration management for the advisory engine."""

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
    STORAGE_BUCKET: str = Field(default="documents", description="Storage bucket for raw uploads")

    # Provider keys (optional: analysis degrades to heuristics without Anthropic)
    OPENAI_API_KEY: str | None = Field(default=None, description="OpenAI API key")
    ANTHROPIC_API_KEY: str | None = Field(default=None, description="Anthropic API key")

    # Environment
    ADVISORY_ENV: str = Field(default="dev", description="Environment: dev, staging, prod")

    # Embedding configuration
    EMBEDDING_MODEL: str = Field(
        default="text-embedding-3-small", description="OpenAI embedding model"
    )
    EMBEDDING_DIM: int = Field(default=1536, description="Embedding vector dimension")
    EMBEDDING_CONCURRENCY: int = Field(
        default=4, description="Max concurrent embedding calls per document"
    )
    EMBEDDING_MAX_ATTEMPTS: int = Field(
        default=3, description="Attempts per chunk before the embedding is reported failed"
    )
    EMBEDDING_BACKOFF_MIN: float = Field(default=1.0, description="Min backoff seconds")
    EMBEDDING_BACKOFF_MAX: float = Field(default=10.0, description="Max backoff seconds")

    # Chunking
    CHUNK_MAX_TOKENS: int = Field(default=500, description="Token budget per chunk")
    TOKENIZER_ENCODING: str = Field(
        default="cl100k_base", description="tiktoken encoding matching the embedding model"
    )

    # Analysis configuration
    ANALYSIS_MODEL: str = Field(
        default="claude-haiku-4-5-20251001", description="Model for document analysis"
    )
    ANALYSIS_MAX_CHARS: int = Field(
        default=8000, description="Max characters of document text sent for analysis"
    )
    ANALYSIS_MAX_TOKENS: int = Field(default=1500, description="Max tokens in analysis response")

    # Upload and search limits
    MAX_UPLOAD_BYTES: int = Field(default=10 * 1024 * 1024, description="Max upload size in bytes")
    SEARCH_DEFAULT_LIMIT: int = Field(default=10, description="Default search result count")
    SEARCH_DEFAULT_THRESHOLD: float = Field(
        default=0.7, description="Default minimum similarity for search results"
    )

    # Sync engine
    CLOUD_PERSISTENCE: bool = Field(default=True, description="Enable cloud sync")
    CONVERSATION_SYNC_INTERVAL: float = Field(default=30.0, description="Seconds")
    DOCUMENT_SYNC_INTERVAL: float = Field(default=60.0, description="Seconds")
    SETTINGS_SYNC_INTERVAL: float = Field(default=300.0, description="Seconds")
    MESSAGE_BATCH_SIZE: int = Field(default=10, description="Messages per insert batch")
    MAX_OFFLINE_QUEUE_SIZE: int = Field(default=100, description="Max queued offline operations")
    LOCAL_STATE_PATH: str = Field(
        default=".advisory_state.json", description="File backing the local state cache"
    )
    LOCAL_STATE_MAX_BYTES: int = Field(
        default=50 * 1024 * 1024, description="Quota for the local state cache"
    )
    LOCAL_SAVE_DEBOUNCE: float = Field(
        default=1.0, description="Seconds to wait after the last change before saving"
    )


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
