"""
Commission Tracker - Configuration Settings

This module handles all application configuration using Pydantic Settings.
Environment variables are loaded from .env file.
"""

from functools import lru_cache
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ===========================================
    # APPLICATION CONFIGURATION
    # ===========================================
    app_name: str = "Commission Tracker"
    app_env: str = "development"
    debug: bool = False
    port: int = 4000
    app_base_url: str = "http://localhost:5173"  # Base URL for email links

    # ===========================================
    # DATABASE CONFIGURATION
    # ===========================================
    database_url: str  # Required - must be set in .env
    database_echo: bool = False
    database_pool_size: int = 5
    database_max_overflow: int = 10

    # ===========================================
    # JWT / SESSION
    # ===========================================
    jwt_secret_key: str  # Required - must be set in .env
    jwt_algorithm: str = "HS256"
    session_cookie_name: str = "webapp_session"
    session_ttl_minutes: int = 60

    # ===========================================
    # PASSWORD RESET
    # ===========================================
    password_reset_token_ttl_minutes: int = 30

    # ===========================================
    # BULK UPLOADS
    # ===========================================
    bulk_upload_max_bytes: int = 2 * 1024 * 1024
    bulk_max_rows: int = 500

    # ===========================================
    # LOGGING
    # ===========================================
    log_level: str = "INFO"
    log_dir: str = "logs"

    # ===========================================
    # EMAIL CONFIGURATION
    # ===========================================
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_use_tls: bool = True
    smtp_username: str = ""
    smtp_password: str = ""
    email_from: str = ""
    email_from_name: str = "Commission Tracker"

    # ===========================================
    # BOOTSTRAP ADMIN
    # Created at startup when both values are set.
    # ===========================================
    bootstrap_admin_username: str = ""
    bootstrap_admin_password: str = ""
    bootstrap_admin_full_name: str = "Administrator"
    bootstrap_admin_email: Optional[str] = None

    # ===========================================
    # CORS SETTINGS
    # ===========================================
    allowed_origin: str = "http://localhost:5173"

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins string into list."""
        return [origin.strip() for origin in self.allowed_origin.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env.lower() == "development"

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every call.
    """
    return Settings()


# Export settings instance
settings = get_settings()
