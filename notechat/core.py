"""Application configuration and settings management.

This module defines the application settings loaded from environment
variables and provides helper functions for accessing cached settings,
email configuration and logging setup.
"""

import logging
from functools import lru_cache
from typing import List, Literal

from fastapi_mail import ConnectionConfig
from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables.

    Attributes:
        DATABASE_URL: Database connection string. When unset the store is
            treated as unavailable.
        DB_TIMEOUT: Seconds to wait for a database connection.
        AUTH_PROVIDER: ``local`` for tokens signed with ``SECRET_KEY``,
            ``jwks`` for tokens issued by an external identity provider.
        SECRET_KEY: Secret key used for JWT signing. Required for ``local``.
        ALGORITHM: Algorithm used to encode JWT tokens.
        ACCESS_TOKEN_EXPIRE_MINUTES: Access token lifetime in minutes.
        JWKS_URL: Key set endpoint of the identity provider.
        JWT_AUDIENCE: Expected ``aud`` claim of provider tokens.
        JWT_ISSUER: Expected ``iss`` claim of provider tokens.
        JWKS_CACHE_TTL_SECONDS: Lifetime of a cached signing key.
        JWKS_CACHE_MAX_KEYS: Upper bound of cached signing keys.
        JWKS_REFRESH_COOLDOWN_SECONDS: Minimum delay between key set fetches.
        HTTP_TIMEOUT: Timeout for outgoing HTTP calls.
        ALLOWED_ORIGINS: Allowed origins for CORS.
        REDIS_URL: Redis connection URL for OTP records and rate limiting.
        REDIS_TIMEOUT: Socket timeout for Redis calls.
        REDIS_ALLOW_INMEMORY: Fall back to an in-process Redis when the
            server is unreachable. Single-process deployments only.
        OTP_TTL_SECONDS: Lifetime of an email OTP.
        OTP_RATE_LIMIT: OTP emails allowed per client and window.
        OTP_RATE_WINDOW_SECONDS: Rate limiting window for OTP emails.
        SMTP_FROM_EMAIL: Sender email address for outgoing emails.
        SMTP_USER: SMTP username.
        SMTP_PASSWORD: SMTP password.
        SMTP_PORT: SMTP server port.
        SMTP_HOST: SMTP server host.
        MAIL_SUPPRESS_SEND: Build messages without handing them to SMTP.
        MAX_REALTIME_CONNECTIONS: Cap on concurrent WebSocket connections.
        LOG_LEVEL: Root logging level.
        HOST: Interface the server binds to.
        PORT: Port the server listens on.
    """

    DATABASE_URL: str | None = None
    DB_TIMEOUT: float = 10.0
    AUTH_PROVIDER: Literal["local", "jwks"] = "local"
    SECRET_KEY: str | None = None
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24
    JWKS_URL: str | None = None
    JWT_AUDIENCE: str | None = None
    JWT_ISSUER: str | None = None
    JWKS_CACHE_TTL_SECONDS: int = 600
    JWKS_CACHE_MAX_KEYS: int = 16
    JWKS_REFRESH_COOLDOWN_SECONDS: int = 10
    HTTP_TIMEOUT: float = 5.0
    ALLOWED_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:3010"]
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_TIMEOUT: float = 5.0
    REDIS_ALLOW_INMEMORY: bool = False
    OTP_TTL_SECONDS: int = 10 * 60
    OTP_RATE_LIMIT: int = 5
    OTP_RATE_WINDOW_SECONDS: int = 60
    SMTP_FROM_EMAIL: str = "noreply@example.com"
    SMTP_USER: str | None = None
    SMTP_PASSWORD: str | None = None
    SMTP_PORT: int = 587
    SMTP_HOST: str | None = None
    MAIL_SUPPRESS_SEND: bool = False
    MAX_REALTIME_CONNECTIONS: int = 1000
    LOG_LEVEL: str = "INFO"
    HOST: str = "0.0.0.0"
    PORT: int = 5001

    class Config:
        """Pydantic configuration for loading environment variables."""

        env_file = ".env"
        extra = "allow"

    @model_validator(mode="after")
    def require_token_material(self) -> "Settings":
        """Refuse to start without the secret or key set the auth mode needs."""
        if self.AUTH_PROVIDER == "local" and not self.SECRET_KEY:
            raise ValueError("SECRET_KEY must be set when AUTH_PROVIDER is 'local'")
        if self.AUTH_PROVIDER == "jwks" and not self.JWKS_URL:
            raise ValueError("JWKS_URL must be set when AUTH_PROVIDER is 'jwks'")
        return self


#: Variables reported by the health endpoint (presence only, never values)
REPORTED_VARIABLES = (
    "DATABASE_URL",
    "SECRET_KEY",
    "JWKS_URL",
    "REDIS_URL",
    "SMTP_HOST",
    "SMTP_USER",
    "SMTP_PASSWORD",
    "PORT",
    "ALLOWED_ORIGINS",
)


@lru_cache()
def get_settings() -> Settings:
    """Return cached application settings.

    The settings object is cached to prevent reloading environment
    variables multiple times during application lifetime.
    """

    return Settings()


def configuration_report(settings: Settings) -> dict[str, bool]:
    """Map each reported variable to whether it carries a value."""
    return {name: bool(getattr(settings, name)) for name in REPORTED_VARIABLES}


def get_mail_config() -> ConnectionConfig:
    """Create and return email configuration for FastAPI-Mail.

    Returns:
        ConnectionConfig: Configured email connection settings.
    """

    settings = get_settings()
    return ConnectionConfig(
        MAIL_USERNAME=settings.SMTP_USER or "",
        MAIL_PASSWORD=settings.SMTP_PASSWORD or "",
        MAIL_FROM=settings.SMTP_FROM_EMAIL,
        MAIL_PORT=settings.SMTP_PORT,
        MAIL_SERVER=settings.SMTP_HOST or "localhost",
        MAIL_STARTTLS=True,
        MAIL_SSL_TLS=False,
        USE_CREDENTIALS=bool(settings.SMTP_USER),
        SUPPRESS_SEND=int(settings.MAIL_SUPPRESS_SEND),
    )


def configure_logging() -> None:
    """Apply ``LOG_LEVEL`` to the root logger."""
    logging.basicConfig(
        level=get_settings().LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
