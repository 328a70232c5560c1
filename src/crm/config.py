"""Application configuration via Pydantic BaseSettings."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    development = "development"
    staging = "staging"
    production = "production"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Environment
    ENVIRONMENT: Environment = Environment.development

    # Logging
    LOG_LEVEL: str = "INFO"

    # Hosted backend (REST dialect + hosted functions)
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: str = ""
    BACKEND_TIMEOUT: float = 10.0
    BACKEND_MAX_RETRIES: int = 3

    # Local/self-hosted SQL backend
    DATABASE_URL: str = "sqlite+aiosqlite:///:memory:"

    # Automation webhook (empty = disabled)
    N8N_WEBHOOK_URL: str = ""
    WEBHOOK_TIMEOUT: float = 10.0

    # AI text generation (hosted functions)
    AI_TIMEOUT: float = 30.0
    DEFAULT_AGENT_NAME: str = "Votre Conseiller"

    # Notifications kept for display before being dropped
    NOTIFICATION_HISTORY: int = 50

    @property
    def functions_url(self) -> str:
        """Base URL of the hosted functions endpoint."""
        return f"{self.SUPABASE_URL.rstrip('/')}/functions/v1"

    @property
    def rest_url(self) -> str:
        """Base URL of the hosted REST endpoint."""
        return f"{self.SUPABASE_URL.rstrip('/')}/rest/v1"


@lru_cache
def get_settings() -> Settings:
    """Singleton settings instance."""
    return Settings()
