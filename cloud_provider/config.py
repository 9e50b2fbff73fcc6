#cloud_provider\config.py

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class ProviderSettings(BaseSettings):
    """Provisioning API connection from environment variables (DEPLOY_PROVIDER_*)."""

    model_config = SettingsConfigDict(
        env_prefix="DEPLOY_PROVIDER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    url: str = "http://localhost:9100"
    timeout_seconds: float = 30
    token: Optional[str] = None
