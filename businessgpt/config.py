"""
Configuration management for the BusinessGPT backend.
Loads settings from environment variables (and .env) with sensible defaults.
"""
from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Application
    app_name: str = "BusinessGPT Beta"
    app_version: str = "0.1.0"
    port: int = 8080
    log_level: str = "info"

    # Database
    database_url: str = "sqlite+aiosqlite:///./businessgpt.db"

    # Auth & Security
    secret_key: str = "businessgpt-super-secret-key-2024"
    base_url: str = "http://localhost:8080"
    google_client_id: Optional[str] = None
    google_client_secret: Optional[str] = None
    access_token_expire_minutes: int = 60 * 24 * 7
    cookie_secure: Optional[bool] = None  # None = auto-detect via proxy headers
    allowed_origins: str = "http://localhost:8080"

    # OpenAI
    openai_api_key: Optional[str] = None
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4o"
    openai_timeout: float = 30.0
    temperature: float = 0.7
    max_tokens: int = 2000

    # Quota
    daily_chat_limit: int = 50
    placeholder_tokens: int = 100

    @property
    def redirect_uri(self) -> str:
        return self.base_url.rstrip("/") + "/auth/callback"

    @property
    def origins(self) -> List[str]:
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
