"""
Harness configuration management using Pydantic Settings.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Harness settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    env_name: Literal["development", "staging", "production"] = "development"
    ui_base_url: str = "https://www.saucedemo.com"
    api_base_url: str = "https://jsonplaceholder.typicode.com"

    # Timeouts (milliseconds)
    default_timeout: int = 30000
    api_timeout: int = 15000
    navigation_timeout: int = 30000

    # Browser
    browser: Literal["chromium", "firefox", "webkit"] = "chromium"
    headless: bool = True
    slow_mo: int = 0
    viewport_width: int = 1280
    viewport_height: int = 720

    # Execution
    retry_count: int = Field(default=1, ge=0)
    workers: int = Field(default=4, ge=1)

    # Artifacts
    report_dir: str = "test-results/reports"
    screenshot_dir: str = "test-results/screenshots"
    video_dir: str = "test-results/videos"
    trace_dir: str = "test-results/traces"
    record_video: bool = False
    record_trace: bool = False

    # Auto-heal
    auto_heal_enabled: bool = True
    auto_heal_timeout: int = 5000
    auto_heal_strategy_timeout: int = 2000
    auto_heal_log_warnings: bool = True

    # API client
    api_retry_backoff: int = 1000  # per attempt, linear

    # Logging
    log_level: str = "INFO"
    log_format: Literal["json", "console"] = "console"

    @property
    def is_development(self) -> bool:
        return self.env_name == "development"

    @property
    def is_production(self) -> bool:
        return self.env_name == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
