"""Configuration management using pydantic-settings."""
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Local cache database
    database_path: Path = Path("./data/catalog_cache.db")

    # Remote catalog
    catalog_base_url: str = "https://flathub.org/api/v2"
    catalog_locale: str = "en"
    request_timeout_seconds: int = 30
    request_retries: int = 3
    retry_backoff_seconds: float = 1.0

    # Limits simultaneous upstream calls (weekly picks fan out per app)
    max_concurrent_requests: int = 10
    coalesce_timeout: float = 30.0

    # Freshness windows in days (0 = refresh once per calendar day)
    featured_max_age_days: int = 0
    weekly_picks_max_age_days: int = 0
    categories_max_age_days: int = 7

    # Bundled notification feed (JSON list)
    notifications_file: Optional[Path] = None

    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
