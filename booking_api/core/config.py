"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.01.00"

    # Database
    DATABASE_URL: str

    # Business timezone used for booking horizon and slot checks
    REFERENCE_TIMEZONE: str = "America/Guadeloupe"

    # Scheduling rules (hours)
    REMINDER_LEAD_HOURS: int = 24
    MINIMUM_CANCELLATION_HOURS: int = 24
    MINIMUM_RESCHEDULE_LEAD_HOURS: int = 24

    # Email action tokens
    ACTION_TOKEN_TTL_HOURS: int = 24

    # Admin backoffice (X-Admin-Api-Key header)
    ADMIN_API_KEY: str = ""
    ADMIN_EMAIL: str = ""

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Frontend (links in emails)
    FRONTEND_URL: str = "http://localhost:3000"
    PUBLIC_API_URL: str = "http://localhost:8000"

    # Email (Resend). Empty key means dry-run sends.
    RESEND_API_KEY: str = ""
    EMAIL_FROM: str = "noreply@example.com"

    # Worker
    WORKER_POLL_INTERVAL: int = 10
    WORKER_BATCH_SIZE: int = 10
    WORKER_STALE_JOB_MINUTES: int = 15

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""

    # Rate Limiting (requests per minute)
    RATE_LIMIT_BOOKING: int = 10
    RATE_LIMIT_API: int = 60

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def frontend_base_url(self) -> str:
        return self.FRONTEND_URL.rstrip("/")

    @property
    def is_production(self) -> bool:
        return self.ENV in ("prod", "production")


settings = Settings()
