"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"
    VERSION: str = "0.1.0"
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite:///./helpdesk.db"

    # Staff session token (supports key rotation)
    JWT_SECRET: str = "change-this-in-production"
    JWT_SECRET_PREVIOUS: str = ""  # Set during rotation, clear after
    JWT_EXPIRES_HOURS: int = 8

    # Customer portal
    PORTAL_SESSION_HOURS: int = 24
    PORTAL_OTP_TTL_MINUTES: int = 10
    PORTAL_OTP_MAX_ATTEMPTS: int = 5

    # Token encryption (Gmail OAuth tokens at rest)
    FERNET_KEY: str = ""  # comma-separated, newest first

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Internal scheduled endpoints (cron jobs)
    INTERNAL_SECRET: str = ""

    # Gmail ingestion
    GMAIL_API_BASE_URL: str = "https://gmail.googleapis.com/gmail/v1"
    GMAIL_SYNC_LOOKBACK_HOURS: int = 1
    GMAIL_SYNC_MAX_RESULTS: int = 50

    # Outbound email (portal one-time codes)
    RESEND_API_KEY: str = ""
    PORTAL_EMAIL_FROM: str = "support@localhost"

    # Error tracking (optional, set in production)
    SENTRY_DSN: str = ""

    # Rate limiting (requests per minute)
    RATE_LIMIT_API: int = 60
    RATE_LIMIT_PUBLIC_FORMS: int = 20
    RATE_LIMIT_PORTAL_AUTH: int = 5
    RATE_LIMIT_STORAGE_URI: str = "memory://"

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def jwt_secrets(self) -> list[str]:
        """Returns list of valid secrets (current first, then previous if set)."""
        secrets = [self.JWT_SECRET]
        if self.JWT_SECRET_PREVIOUS:
            secrets.append(self.JWT_SECRET_PREVIOUS)
        return secrets


settings = Settings()
