"""Application configuration."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_STORAGE_PATH = str(Path.home() / ".quiz_admin" / "storage.json")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env.

    Priority: environment variables > .env > defaults
    """

    model_config = SettingsConfigDict(
        env_file=("../.env", ".env"), env_file_encoding="utf-8", extra="ignore"
    )

    # The single superuser; role escalation everywhere compares against this address
    master_admin_email: str = ""

    # Identity provider (Supabase GoTrue)
    supabase_url: str = ""
    supabase_anon_key: str = ""
    identity_timeout_seconds: float = 10.0

    # Database
    database_url: str = "sqlite+aiosqlite:///./data/quiz_admin.db"
    database_echo: bool = False

    # Local session
    session_lifetime_seconds: float = 3600.0  # absolute cap, 1 hour
    activity_timeout_seconds: float = 1800.0  # sliding idle window, 30 minutes
    session_storage_path: str = DEFAULT_STORAGE_PATH

    # Rate limits (attempts, window seconds)
    login_max_attempts: int = 5
    login_window_seconds: float = 900.0
    search_max_attempts: int = 30
    search_window_seconds: float = 60.0
    api_max_attempts: int = 100
    api_window_seconds: float = 60.0

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    dev_mode: bool = True
    log_json: bool = False

    @property
    def identity_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_anon_key)


settings = Settings()
