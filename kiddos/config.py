"""Configuration management for the Kiddos catalog backend."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="KIDDOS_", extra="ignore"
    )

    # Security
    jwt_secret: str

    # YouTube Data API
    youtube_api_key: str = Field(default="")
    provider_timeout_seconds: float = 15.0

    # Database
    database_url: str = "sqlite+aiosqlite:///./kiddos.db"
    sqlite_busy_timeout_seconds: float = 30.0

    # Catalog cache. The *_default values seed the settings table and are
    # used when a stored value is missing or unreadable.
    cache_duration_minutes_default: int = 60
    videos_per_channel_default: int = Field(default=50, ge=1, le=50)
    min_video_duration_seconds: int = 600

    # Refresh fan-out
    refresh_concurrency: int = Field(default=4, ge=1)
    sync_timeout_seconds: float = 60.0
    refresh_lease_max_minutes: int = 30

    # Pagination
    page_size_default: int = Field(default=12, ge=1)
    page_size_max: int = Field(default=50, ge=1)

    # CORS
    frontend_origin: str = "http://localhost:5173"

    # Environment
    env: str = Field(default="dev", pattern="^(dev|prod)$")


_settings: Settings | None = None


def get_settings() -> Settings:
    """Get cached settings instance (singleton pattern)."""
    global _settings
    if _settings is None:
        _settings = Settings()  # type: ignore[call-arg]
    return _settings
