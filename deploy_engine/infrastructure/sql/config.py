#deploy_engine\infrastructure\sql\config.py

from pydantic_settings import BaseSettings, SettingsConfigDict


class StateStoreSettings(BaseSettings):
    """State database configuration from environment variables (DEPLOY_STATE_*)."""

    model_config = SettingsConfigDict(
        env_prefix="DEPLOY_STATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # SQLite file by default; any SQLAlchemy URL works (postgresql://...)
    database_url: str = "sqlite:///deploy_state.db"

    # Connection pool (ignored for SQLite)
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 3600

    # SQLAlchemy
    echo_sql: bool = False

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")
