"""Runtime configuration, env-driven.

Reads ``ROUNDFLOW_*`` environment variables and an optional ``.env`` file.
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RoundflowConfig(BaseSettings):
    """Runtime configuration with environment variable overrides.

    Examples
    --------
    Override via environment::

        export ROUNDFLOW_LOG_LEVEL=DEBUG
        export ROUNDFLOW_DEFAULT_TIMEZONE=Europe/Helsinki
        export ROUNDFLOW_ALLOW_LATE_JOIN=false

    Or via .env file::

        ROUNDFLOW_ENVIRONMENT=production
        ROUNDFLOW_PUBLISH_GUILD_SCOPED=true
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="ROUNDFLOW_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Runtime environment
    environment: str = "development"
    log_level: str = "INFO"
    debug: bool = False

    # Time
    default_timezone: str = "America/Chicago"

    # Dispatch
    handler_timeout_seconds: float = Field(default=30.0, gt=0)
    max_delivery_attempts: int = Field(default=5, ge=1)
    local_queue_depth: int = Field(default=1024, ge=1)

    # Rounds
    allow_late_join: bool = True
    publish_guild_scoped: bool = True

    # Scorecard imports
    scorecard_max_bytes: int = Field(default=5 * 1024 * 1024, ge=1)
    scorecard_fetch_timeout_seconds: float = Field(default=10.0, gt=0)

    @property
    def is_production(self) -> bool:
        """Whether running in production mode."""
        return self.environment == "production"
