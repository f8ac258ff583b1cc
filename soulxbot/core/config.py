"""Application configuration using Pydantic Settings"""

import logging
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Twitch application
    client_id: str = Field(..., description="Twitch OAuth Client ID")
    client_secret: str = Field(..., description="Twitch OAuth Client Secret")

    # Bot chat identity
    bot_id: str = Field(..., description="Twitch user ID of the bot account")
    bot_access_token: str = Field(default="", description="Bot user access token")
    bot_refresh_token: str = Field(default="", description="Bot user refresh token")
    command_prefix: str = Field(default="!", description="Chat command trigger character")

    # Database
    database_url: str = Field(..., description="PostgreSQL database URL")
    database_ssl: bool = Field(default=False, description="Require SSL for database connections")

    # Secrets
    token_passphrase: str = Field(..., description="Passphrase the OAuth token vault key is derived from")
    basic_auth: str = Field(..., description="Operator credentials as 'user:password'")

    # Server
    api_url: str = Field(default="http://localhost:8080", description="Public base URL of the API")
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")

    # Session polling
    poll_interval_seconds: float = Field(default=300, description="Broadcast status poll interval")

    # Environment
    environment: str = Field(default="development", description="Environment name")
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid logging level"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            logger.warning(f"Invalid log level '{v}', defaulting to INFO")
            return "INFO"
        return v_upper

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        if not v.startswith(("postgresql://", "postgres://")):
            raise ValueError("DATABASE_URL must start with 'postgresql://'")
        return v

    @field_validator("basic_auth")
    @classmethod
    def validate_basic_auth(cls, v: str) -> str:
        if ":" not in v:
            raise ValueError("BASIC_AUTH must be in the form 'user:password'")
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production environment"""
        return self.environment.lower() == "production"

    @property
    def oauth_redirect_uri(self) -> str:
        return f"{self.api_url.rstrip('/')}/oauth/callback"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()  # type: ignore[call-arg]
