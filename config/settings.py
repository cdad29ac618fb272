"""
Configuration settings for the application
"""
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

APP_NAME = "Askwise"

# User roles
ROLE_USER = "user"
ROLE_ADMIN = "admin"


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,  # Allow both field name and alias
        extra="ignore",
    )

    # Core authentication and security
    jwt_secret_key: Optional[str] = Field(default=None, alias="JWT_SECRET_KEY")
    auth_cookie_name: str = Field(default="auth_token", alias="AUTH_COOKIE_NAME")

    # Infrastructure configuration
    redis_url: Optional[str] = Field(default=None, alias="REDIS_URL")
    database_url: Optional[str] = Field(default="sqlite+aiosqlite:///./sql_app.db", alias="DATABASE_URL")

    # Frontend configuration
    frontend_url: Optional[str] = Field(default="http://localhost:5173", alias="FRONTEND_URL")
    cors_origins: Optional[str] = Field(default=None, alias="CORS_ORIGINS")

    # Entitlements
    default_free_questions: int = Field(default=1, alias="DEFAULT_FREE_QUESTIONS")
    max_message_length: int = Field(default=4000, alias="MAX_MESSAGE_LENGTH")

    # Rate limiting (requests per minute per client IP, 0 disables)
    rate_limit_per_minute: int = Field(default=30, alias="RATE_LIMIT_PER_MINUTE")

    # Render.com deployment configuration
    render: Optional[str] = Field(default=None, alias="RENDER")
    render_external_url: Optional[str] = Field(default=None, alias="RENDER_EXTERNAL_URL")
    render_service_name: Optional[str] = Field(default=None, alias="RENDER_SERVICE_NAME")

    # Environment configuration
    env: Optional[str] = Field(default=None, alias="ENV")

    def allowed_origins(self) -> List[str]:
        """CORS origins: CORS_ORIGINS (comma-separated) or the frontend URL."""
        if self.cors_origins:
            return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]
        return [self.frontend_url] if self.frontend_url else []


# Instantiate settings object
settings = Settings()

# Determine if we're in production mode
IS_PRODUCTION = bool(settings.render) or bool(settings.env and settings.env.lower() == "production")
