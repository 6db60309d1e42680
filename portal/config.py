"""
Application Configuration

Centralized configuration management using Pydantic settings.
Loads from environment variables with fallback to .env file.
"""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    get_settings() is cached, so tests that need different values must
    set the environment before the portal package is imported.
    """

    # Database settings
    DATABASE_URL: str = "postgresql://localhost/portal_dev"
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 40

    # Security settings
    SECRET_KEY: str = "dev-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24
    BCRYPT_ROUNDS: int = 10

    # Redis for sessions and rate limiting
    REDIS_URL: str = "redis://localhost:6379/0"

    # Session cookie
    SESSION_COOKIE_NAME: str = "portal_session"
    SESSION_TTL_SECONDS: int = 2 * 604800
    SESSION_COOKIE_SECURE: bool = False

    # Rate limiting (per client address, fixed window)
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_WINDOW_SECONDS: int = 15 * 60
    RATE_LIMIT_MAX_REQUESTS: int = 100
    # Reverse proxies in front of the app that append to X-Forwarded-For.
    # 0 means the header is ignored and the socket address is used.
    TRUSTED_PROXY_COUNT: int = 0

    # Workspace links
    BASE_DOMAIN: str = "localhost:3000"
    URL_SCHEME: str = "http"

    # Account lifecycle
    TRIAL_PERIOD_DAYS: int = 14
    EMAIL_THROTTLE_MINUTES: int = 5
    VERIFY_EMAIL_GRACE_HOURS: int = 2
    RESET_PASSWORD_GRACE_HOURS: int = 2
    FORGOT_ACCOUNT_GRACE_HOURS: int = 1

    # Outgoing mail
    MAIL_ENABLED: bool = False
    MAIL_FROM: str = "no-reply@localhost"
    SMTP_HOST: str = "localhost"
    SMTP_PORT: int = 25
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_USE_TLS: bool = False

    # Application settings
    DEBUG: bool = False
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
