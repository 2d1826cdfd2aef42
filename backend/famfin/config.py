"""
Application configuration using Pydantic Settings.
Loads from environment variables and .env file.
"""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_url: str = "sqlite+aiosqlite:///./data/family_finance.db"

    # Household - single family app, no auth
    default_user_id: str = "00000000-0000-0000-0000-000000000001"
    household_members: list[str] = ["primary", "partner"]

    # Web
    app_url: str = "http://localhost:3000"
    cors_origins: list[str] = ["http://localhost:3000"]
    log_level: str = "INFO"

    # Anthropic API (chat)
    anthropic_api_key: str = ""
    ai_model: str = "claude-sonnet-4-20250514"
    ai_max_tool_rounds: int = 5

    # OpenAI API (document embeddings)
    openai_api_key: str = ""
    embedding_model: str = "text-embedding-3-small"

    # Xero OAuth
    xero_client_id: str = ""
    xero_client_secret: str = ""
    xero_redirect_uri: str = ""

    # Security
    encryption_key: str = ""

    # File Storage
    documents_path: str = "~/family-finance/documents"
    max_upload_bytes: int = 10 * 1024 * 1024

    @property
    def documents_dir(self) -> Path:
        """Get resolved documents directory path."""
        return Path(self.documents_path).expanduser()

    @property
    def xero_callback_url(self) -> str:
        """Redirect URI registered with Xero."""
        if self.xero_redirect_uri:
            return self.xero_redirect_uri
        return f"{self.app_url.rstrip('/')}/callback"

    def is_anthropic_configured(self) -> bool:
        """Check if Anthropic API is configured."""
        return bool(self.anthropic_api_key)

    def is_openai_configured(self) -> bool:
        """Check if OpenAI API is configured."""
        return bool(self.openai_api_key)

    def is_xero_configured(self) -> bool:
        """Check if Xero OAuth credentials are configured."""
        return bool(self.xero_client_id and self.xero_client_secret)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
