# core/config.py
"""
Application settings loaded from environment variables (and an optional
``.env`` file) via Pydantic Settings.

Usage::

    from core.config import get_settings

    settings = get_settings()
    settings.NAVIGATION_TIMEOUT_MS
"""

from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration for the API, the CLI and the crawler."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Service
    # ------------------------------------------------------------------
    PROJECT_NAME: str = "Article Scraper API"
    ENVIRONMENT: str = "development"
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    ALLOWED_ORIGINS: List[str] = ["*"]

    # ------------------------------------------------------------------
    # Database – optional so the API still starts without it
    # ------------------------------------------------------------------
    DATABASE_URL: Optional[str] = None
    DIRECT_URL: Optional[str] = None

    # ------------------------------------------------------------------
    # Crawl target (a key in configs/sources.yaml)
    # ------------------------------------------------------------------
    SOURCE_NAME: str = "economist_ai"

    # ------------------------------------------------------------------
    # Browser
    # ------------------------------------------------------------------
    DEFAULT_USER_AGENT: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/109.0.0.0 Safari/537.36"
    )
    BROWSER_EXECUTABLE_PATH: Optional[str] = None
    BROWSER_ARGS: List[str] = [
        "--no-sandbox",
        "--disable-setuid-sandbox",
        "--disable-dev-shm-usage",
        "--disable-accelerated-2d-canvas",
        "--no-first-run",
        "--no-zygote",
        "--disable-gpu",
    ]

    # ------------------------------------------------------------------
    # Timeouts (milliseconds, Playwright units)
    # ------------------------------------------------------------------
    NAVIGATION_TIMEOUT_MS: int = 30_000
    LINK_WAIT_MS: int = 10_000
    PARAGRAPH_WAIT_MS: int = 12_000
    MIRROR_WAIT_MS: int = 8_000

    # ------------------------------------------------------------------
    # Embedded page-data heuristic
    # ------------------------------------------------------------------
    PAGE_DATA_MIN_LENGTH: int = 40
    PAGE_DATA_MAX_STRINGS: int = 80

    @property
    def database_configured(self) -> bool:
        return bool(self.DATABASE_URL)


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()


settings = get_settings()
