"""Configuration from environment (no hardcoded secrets)."""

from pathlib import Path
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Backend settings from env."""

    model_config = SettingsConfigDict(env_prefix="GITSTACK_", extra="ignore")

    # Relational store: any SQLAlchemy async URL (sqlite+aiosqlite, postgresql+asyncpg)
    database_url: str = "sqlite+aiosqlite:////data/gitstack.db"
    database_echo: bool = False

    # Blob store: content lives under blob_base_path / blob_bucket / {project_id}/{hash}
    blob_base_path: Path = Path("/data/blobs")
    blob_bucket: str = "gitstack-files"

    # Snapshot defaults
    default_branch: str = "main"
    file_mode: int = 644

    # CORS: comma-separated string in env so pydantic-settings does not JSON-decode it
    cors_origins: str = "http://localhost:3000"

    @property
    def cors_origins_list(self) -> List[str]:
        """CORS origins as a list (split on comma)."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()] or [
            "http://localhost:3000"
        ]

    # Rate limiting (slowapi, in-memory per process)
    rate_limit_enabled: bool = True

    # Server
    host: str = "0.0.0.0"
    port: int = 5000

    # Logging (empty log_file = stderr only; level DEBUG|INFO|WARNING|ERROR)
    log_level: str = "INFO"
    log_file: str = ""


def get_settings() -> Settings:
    """Return application settings."""
    return Settings()
