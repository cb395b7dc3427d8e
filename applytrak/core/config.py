"""Application configuration management."""

from typing import Literal

from pydantic import ConfigDict, Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Storage
    database_url: str = "sqlite+aiosqlite:///./applytrak.db"
    redis_url: str = "redis://localhost:6379/0"

    # Cloud data source
    cloud_api_url: str | None = None
    cloud_api_key: str | None = None
    cloud_timeout_seconds: float = Field(default=30.0, gt=0)

    # Backups
    backup_max_age_days: int = Field(
        default=30,
        ge=0,
        description="Database backups older than this are not offered for recovery (0 disables)",
    )
    local_cache_slots: int = Field(default=2, ge=1, le=20)
    local_cache_notes_limit: int = Field(default=500, ge=0)

    auto_backup_enabled: bool = True
    auto_backup_interval_minutes: int = Field(default=30, ge=1)

    # Recovery
    restore_dedupe_by_business_key: bool = Field(
        default=False,
        description="Skip restored records matching a live company+position+date_applied",
    )

    # Conflicts
    default_strategy: Literal["local-wins", "remote-wins", "merge"] = "local-wins"

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()
