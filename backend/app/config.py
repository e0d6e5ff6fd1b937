"""Configuration from environment (no hardcoded secrets)."""

from pathlib import Path
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Backend settings from env (MEDIAHASH_*)."""

    model_config = SettingsConfigDict(env_prefix="MEDIAHASH_", extra="ignore")

    # Media library
    storage_base_path: Path = Path("/var/lib/mediahash/uploads")
    db_path: Path = Path("/data/mediahash.db")
    max_upload_bytes: int = 64 * 1024 * 1024

    # SHA-1 backfill for media that predates the index
    backfill_on_startup: bool = True
    backfill_force: bool = False

    # JWT
    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 30
    refresh_token_expire_days: int = 7

    # First admin (bootstrap)
    admin_email: str = ""
    admin_initial_password: str = ""

    # CORS: comma-separated string so pydantic-settings does not JSON-decode it
    cors_origins: str = "http://localhost:3000"

    @property
    def cors_origins_list(self) -> List[str]:
        """CORS origins as a list (split on comma)."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    # Rate limiting (slowapi, per client address)
    rate_limit_enabled: bool = True

    # Server
    port: int = 8080

    # Logging (empty log_file = stderr only; level DEBUG|INFO|WARNING|ERROR)
    log_level: str = "INFO"
    log_file: str = ""


def get_settings() -> Settings:
    """Return application settings."""
    return Settings()
