"""
Runner configuration management using Pydantic Settings.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runner settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_env: Literal["development", "ci", "production"] = "development"
    app_debug: bool = False

    # AI provider
    ai_provider: Literal["anthropic", "openai"] = "anthropic"
    ai_model: str = "claude-3-5-sonnet"
    anthropic_api_key: str = Field(default="")
    openai_api_key: str = Field(default="")
    llm_temperature: float = 0.0
    llm_max_tokens: int = 1024

    # Playwright
    base_url: str = "http://localhost:3000"
    playwright_headless: bool = True
    playwright_timeout: int = 30000  # milliseconds
    playwright_slow_mo: int = 0
    display_width: int = 1920
    display_height: int = 1080

    # Test discovery
    test_pattern: str = "**/*.e2e.py"

    # Cache
    cache_dir: str = ".sightline/cache"
    caching_enabled: bool = True
    cache_max_age_seconds: int = 7 * 24 * 60 * 60  # one week
    cache_lock_timeout_seconds: float = 10.0

    # Logging
    log_level: str = "INFO"
    log_format: Literal["json", "console"] = "console"

    @property
    def is_ci(self) -> bool:
        return self.app_env == "ci"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
