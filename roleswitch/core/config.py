"""Application configuration."""

import logging
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./roleswitch.db"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="ROLESWITCH_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = DEFAULT_DATABASE_URL
    run_migrations: bool = True

    @property
    def async_database_url(self) -> str:
        """Convert DATABASE_URL to an async driver URL for SQLAlchemy."""
        url = self.database_url
        if url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        elif url.startswith("sqlite:///"):
            url = url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
        return url

    # CORS - stored as comma-separated string, parsed via property
    allowed_origins_str: str = "http://localhost:5173,http://localhost:3000"

    @property
    def allowed_origins(self) -> list[str]:
        """Parse allowed_origins from comma-separated string."""
        return [origin.strip() for origin in self.allowed_origins_str.split(",") if origin.strip()]

    # App settings
    debug: bool = False
    environment: str = "development"
    log_level: str = "INFO"
    json_logs: bool = False

    # Role registry
    seed_default_roles: bool = True

    # Engine defaults (overridden by persisted runtime settings)
    minimum_session_duration: int = Field(default=300, ge=0, le=3600)
    transition_window_duration: int = Field(default=30, ge=0, le=600)
    enable_notifications: bool = True
    auto_save_interval: int = Field(default=30, ge=10, le=300)
    timer_tick_seconds: float = Field(default=1.0, gt=0)

    # History retention
    history_max_sessions: int = Field(default=1000, ge=1)
    history_max_events: int = Field(default=5000, ge=1)

    @model_validator(mode="after")
    def validate_database_url(self) -> "Settings":
        """Warn when production runs on the development SQLite default."""
        is_production = self.environment.lower() in ("production", "prod")
        if is_production and self.database_url == DEFAULT_DATABASE_URL:
            logger.warning(
                "ROLESWITCH_DATABASE_URL not set - using local SQLite file in production. "
                "Set ROLESWITCH_DATABASE_URL to a persistent database."
            )
        return self


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
