"""Configuration management using pydantic-settings."""
from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Hosted database (REST interface)
    backend_url: str = "http://localhost:54321"
    backend_api_key: Optional[str] = None
    backend_timeout_seconds: float = 30.0
    backend_retry_attempts: int = 3

    # Cache settings
    cache_storage: Literal["sqlite", "memory"] = "sqlite"
    cache_db_path: Path = Path("./data/cache.db")
    cache_namespace: str = "bocache"
    cache_max_entries: Optional[int] = 500
    coalesce_timeout: float = 30.0

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
