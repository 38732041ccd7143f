"""
Configuration settings for SprintDesk.
Manages environment variables and default values.
"""

from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """SprintDesk client configuration."""

    # Supabase project (PostgREST, GoTrue, Storage)
    supabase_url: Optional[str] = None
    supabase_anon_key: Optional[str] = None
    supabase_storage_bucket: str = "attachments"

    # HTTP client settings
    supabase_timeout: int = 30
    supabase_max_retries: int = 2

    # Text generation (Gemini generateContent API)
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.5-flash"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    gemini_timeout: int = 60

    # Client-side local storage (session snapshot)
    local_db_url: str = "sqlite+aiosqlite:///./sprintdesk_local.db"

    # Realtime change relay (Supabase database webhooks)
    webhook_host: str = "0.0.0.0"
    webhook_port: int = 5533
    webhook_secret: Optional[str] = None

    # Store behaviour
    toast_ttl_seconds: float = 4.0
    default_sprint_capacity: int = 30

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None
    log_console_level: str = "WARNING"

    class Config:
        env_prefix = ""
        env_file = ".env"
        case_sensitive = False

    @property
    def is_configured(self) -> bool:
        """Whether the remote data service can be reached at all."""
        url = (self.supabase_url or "").strip()
        return bool(url and self.supabase_anon_key) and url.startswith(("http://", "https://"))

    @property
    def has_generation_key(self) -> bool:
        return bool(self.gemini_api_key)


# Find .env file relative to this settings.py file
def find_env_file():
    """Find .env file in project root."""
    current_file = Path(__file__)
    project_root = current_file.parent.parent.parent  # Go up to project root
    env_file = project_root / ".env"
    return str(env_file) if env_file.exists() else None

# Global settings instance with explicit env file path
env_file_path = find_env_file()
if env_file_path:
    settings = Settings(_env_file=env_file_path)
else:
    settings = Settings()
