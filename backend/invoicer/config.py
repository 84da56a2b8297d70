"""
Application configuration loaded from environment variables.
"""
from pydantic_settings import BaseSettings
from functools import lru_cache

API_VERSION = "0.1.0"


class Settings(BaseSettings):
    """Application settings from environment variables."""

    # Google OAuth
    google_client_id: str = ""
    google_client_secret: str = ""
    # Empty means "derive from base_url"
    google_redirect_uri: str = ""

    # How the connected account's email is resolved: "id_token" or "userinfo"
    identity_resolution: str = "id_token"

    # Public URL of this API, used to build the OAuth redirect URI
    base_url: str = "http://localhost:8000"

    # Frontend URL for CORS and redirects
    frontend_url: str = "http://localhost:3000"

    # Database (any async SQLAlchemy URL)
    database_url: str = "sqlite+aiosqlite:///./invoicer.db"

    # Session
    session_secret: str = "dev-secret-change-in-production"
    session_expire_hours: int = 24

    # Outbound HTTP
    http_timeout_seconds: float = 10.0

    # Debug mode
    debug: bool = True

    @property
    def oauth_redirect_uri(self) -> str:
        if self.google_redirect_uri:
            return self.google_redirect_uri
        return f"{self.base_url.rstrip('/')}/api/sources/gmail/callback"

    # Google OAuth scopes
    @property
    def google_scopes(self) -> list[str]:
        return [
            "openid",
            "email",
            "https://mail.google.com/",
        ]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
