"""Configuration management for SlotShift."""

from datetime import tzinfo
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional
from zoneinfo import ZoneInfo

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Schedule service (system of record)
    schedule_service_url: str = Field(
        default="http://localhost:8000/api/v1/",
        description="Base URL of the appointment/schedule service",
    )
    schedule_service_token: str = Field(
        default="",
        description="Bearer token for the schedule service",
    )
    schedule_service_timeout: int = Field(
        default=30,
        description="Timeout in seconds for schedule service requests",
    )
    fetch_max_retries: int = Field(
        default=3,
        ge=1,
        description="Attempts for idempotent schedule fetches (commits are never retried)",
    )

    # Scheduling rules
    local_timezone: Optional[str] = Field(
        default=None,
        description="IANA timezone used to group schedules by calendar date",
    )
    block_degraded_transfers: bool = Field(
        default=False,
        description="Reject transfers whose appointment id falls back to the slot id",
    )

    # Observability
    observability_enabled: bool = Field(default=True)
    observability_log_dir: Path = Field(
        default=Path("./data/logs"),
        description="Directory for reconciliation JSONL logs",
    )

    # API Settings
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8080)

    # CORS
    cors_origins: list[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")

    @property
    def timezone(self) -> Optional[tzinfo]:
        """Resolved local timezone, if configured."""
        return ZoneInfo(self.local_timezone) if self.local_timezone else None


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
