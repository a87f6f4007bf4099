"""Application configuration."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven settings validated at startup."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    database_path: Path = Field(default=Path("workflow_dispatch.db"), alias="DATABASE_PATH")
    webhook_auth_user: str = Field(default="dispatch", alias="WEBHOOK_AUTH_USER")
    webhook_auth_pass: str = Field(..., alias="WEBHOOK_AUTH_PASS")
    webhook_header_prefix: str = Field(default="X-Dispatch", alias="WEBHOOK_HEADER_PREFIX")
    webhook_user_agent: str = Field(default="workflow-dispatch/1.0", alias="WEBHOOK_USER_AGENT")
    # Tasks claimed per dispatch cycle; bounded so one cycle cannot monopolize the engine.
    dispatch_batch_size: int = Field(default=10, ge=1, le=10, alias="DISPATCH_BATCH_SIZE")
    dispatch_poll_interval_seconds: float = Field(default=60.0, gt=0, alias="DISPATCH_POLL_INTERVAL_SECONDS")
    default_workflow_timeout_seconds: float = Field(
        default=180.0,
        gt=0,
        alias="DEFAULT_WORKFLOW_TIMEOUT_SECONDS",
    )
    session_ttl_hours: float = Field(default=24.0, gt=0, alias="SESSION_TTL_HOURS")
    session_cleanup_every_cycles: int = Field(default=60, ge=1, alias="SESSION_CLEANUP_EVERY_CYCLES")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")


def load_settings() -> Settings:
    """Load and validate settings."""

    return Settings()
