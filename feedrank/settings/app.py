"""Application settings powered by Pydantic BaseSettings."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FEEDRANK_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    db_path: Path = Field(default=Path("state/ranking.sqlite"))
    catalog_path: Path | None = Field(default=None)
    config_path: Path | None = Field(default=None)
    debounce_seconds: float = Field(default=5.0, ge=0.0)
    feed_kind_timeout_seconds: float = Field(default=2.0, gt=0.0)
    delta_max_workers: int = Field(default=4, ge=1)
    recompute_max_workers: int = Field(default=1, ge=1)
    ranking_events_enabled: bool = Field(default=True)
    log_json: bool = Field(default=True)
    log_level: str = Field(default="INFO")


def get_settings() -> AppSettings:
    """Get a settings instance."""
    return AppSettings()
