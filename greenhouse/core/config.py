"""
Greenhouse Devices - Configuration
All settings loaded from environment variables
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str

    # Liveness
    offline_threshold_seconds: int = 120
    sweep_interval_seconds: int = 60  # scheduler loop period
    heartbeat_interval_seconds: int = 60  # reported to devices

    # Admin API (empty = disabled)
    admin_token: str = ""

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",  # Fallback for local development
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def admin_enabled(self) -> bool:
        return bool(self.admin_token)


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
