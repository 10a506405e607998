"""
Configuration management for the nightlife directory API.
Uses Pydantic Settings for environment variable management.
"""
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Configuration
    API_TITLE: str = "Moroc Nights API"
    API_VERSION: str = "0.1.0"
    API_DESCRIPTION: str = "Bilingual nightlife venue directory with admin back-office"

    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "https://morocnights.com",
    ]

    # Database Configuration
    # DATABASE_URL points at the hosted store; the two credential tiers below
    # are swapped into it to build the public and service engines.
    DATABASE_URL: str = ""

    # Restricted role, subject to row-level security policies (public reads)
    DB_ANON_USER: str = ""
    DB_ANON_PASSWORD: str = ""

    # Privileged role, bypasses row-level security (admin writes)
    DB_SERVICE_USER: str = ""
    DB_SERVICE_PASSWORD: str = ""

    # Admin authentication
    # Should be bcrypt hashed password (see nightlife-password)
    ADMIN_PASSWORD_HASH: str = ""
    # SECRET_KEY should be a long random string (e.g., generated with: openssl rand -hex 32)
    JWT_SECRET_KEY: str = "change-me-in-production-use-openssl-rand-hex-32"
    ADMIN_SESSION_MAX_AGE: int = 60 * 60 * 24 * 7  # 7 days
    ADMIN_COOKIE_SECURE: bool = False

    RATE_LIMIT_ENABLED: bool = True
    LOGIN_RATE_LIMIT: str = "5/minute"  # per client IP
    # The site runs behind a proxy that sets X-Forwarded-For
    TRUST_FORWARDED_FOR: bool = True

    # Public site
    SITE_URL: str = "https://morocnights.com"
    DEFAULT_PAGE_SIZE: int = 12

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields in .env that aren't defined in Settings


# Global settings instance
settings = Settings()
