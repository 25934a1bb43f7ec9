"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_PRECISION = 14
DEFAULT_BATCH_SIZE = 100_000
MAX_CONCURRENT_BATCHES = 8
DEFAULT_READ_CHUNK_SIZE = 256 * 1024


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Login Metrics Service"
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # Sketches
    sketch_precision: int = DEFAULT_PRECISION  # 2^14 registers, ~0.81% error

    # Ingestion pipeline
    batch_size: int = DEFAULT_BATCH_SIZE
    max_concurrent_batches: int = MAX_CONCURRENT_BATCHES
    read_chunk_size: int = DEFAULT_READ_CHUNK_SIZE  # bytes per read
    progress_log_interval: int = 100_000  # events between progress lines

    # Queries
    max_range_days: int = 366  # longest span served by one range request


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
