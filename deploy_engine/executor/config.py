#deploy_engine\executor\config.py
from dataclasses import dataclass

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


@dataclass(frozen=True)
class EngineConfig:
    max_concurrency: int = 4

    # Provider call retry (transient errors only)
    max_attempts: int = 5
    backoff_multiplier: float = 1.0
    backoff_min_seconds: float = 1.0
    backoff_max_seconds: float = 30.0

    # Ready-wait
    default_timeout_seconds: float = 300.0
    poll_interval_seconds: float = 2.0


class EngineSettings(BaseSettings):
    """Engine configuration from environment variables (DEPLOY_*)."""

    model_config = SettingsConfigDict(
        env_prefix="DEPLOY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    max_concurrency: int = Field(default=4, ge=1)

    max_attempts: int = Field(default=5, ge=1)
    backoff_multiplier: float = Field(default=1.0, ge=0)
    backoff_min_seconds: float = Field(default=1.0, ge=0)
    backoff_max_seconds: float = Field(default=30.0, ge=0)

    default_timeout_seconds: float = Field(default=300.0, gt=0)
    poll_interval_seconds: float = Field(default=2.0, gt=0)

    def to_config(self) -> EngineConfig:
        return EngineConfig(
            max_concurrency=self.max_concurrency,
            max_attempts=self.max_attempts,
            backoff_multiplier=self.backoff_multiplier,
            backoff_min_seconds=self.backoff_min_seconds,
            backoff_max_seconds=self.backoff_max_seconds,
            default_timeout_seconds=self.default_timeout_seconds,
            poll_interval_seconds=self.poll_interval_seconds,
        )
