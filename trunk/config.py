"""Configuration settings for trunk."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

from trunk.utils import get_trunk_home


class Settings(BaseSettings):
    """Settings loaded from ``TRUNK_*`` environment variables or ``.env``."""

    # Local data
    home: Path = get_trunk_home()
    db_path: Path | None = None  # Defaults to <home>/trunk.db

    # Supabase
    supabase_url: str | None = None
    supabase_key: str | None = None
    user_id: str | None = None  # Authenticated user; sync refuses to run without it

    # Sync
    sync_timeout: float = 15.0
    events_table: str = "events"

    # App
    log_level: str = "WARNING"

    class Config:
        env_prefix = "TRUNK_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra env vars not in model

    @property
    def database_path(self) -> Path:
        return self.db_path or self.home / "trunk.db"

    @property
    def remote_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
