"""Application configuration using Pydantic Settings."""

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "sqlite:///./photogen.db"

    # Image generation API (OpenAI-compatible images endpoint)
    IMAGE_API_KEY: str = ""
    IMAGE_API_BASE_URL: str = "https://api.openai.com/v1"
    IMAGE_MODEL: str = "gpt-image-1"
    IMAGE_API_TIMEOUT: float = 120.0

    # Blob storage
    STORAGE_BUCKET: str = ""
    URL_STRATEGY: str = "token"  # 'token' (download token) or 'signed'
    SIGNED_URL_TTL_DAYS: int = 1825  # catalog images live for years
    REFERENCE_URL_TTL_MINUTES: int = 15

    # Output layout
    OUTPUT_FOLDER: str = "generated"
    INCOMING_PREFIX: str = "incoming/"
    DEFAULT_SIZE: str = "1024x1536"

    # Job policy
    STALE_PROCESSING_SECONDS: Optional[int] = None  # None = never reclaim; otherwise the worker redelivers stuck jobs
    SWALLOW_BACKGROUND_ERRORS: bool = True

    # Worker
    WORKER_ENABLED: bool = True
    WORKER_POLL_INTERVAL: int = 5
    WORKER_BATCH_SIZE: int = 10

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)


# Global settings instance
settings = Settings()
