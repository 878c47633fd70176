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

    # Session Token (supports key rotation)
    JWT_SECRET: str = "change-this-in-production"
    JWT_SECRET_PREVIOUS: str = ""  # Set during rotation, clear after
    JWT_EXPIRES_HOURS: int = 8

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Frontend (portal links in outbound email)
    FRONTEND_URL: str = "http://localhost:3000"

    # Public base URL of this API (tracking pixel / click links)
    API_BASE_URL: str = "http://localhost:8000"

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""

    LOG_LEVEL: str = "INFO"

    # SWMS workflow rules
    OVERDUE_THRESHOLD_HOURS: int = 48  # Awaiting-review submissions older than this are overdue
    PORTAL_TOKEN_TTL_DAYS: int = 7  # Reminder and broadcast portal links
    URGENT_TOKEN_TTL_HOURS: int = 24  # Urgent safety alert portal links
    MAX_FREE_TEXT_LENGTH: int = 2000  # Approval criteria, urgent/broadcast messages

    # Per-action deadline for the campaign dispatcher
    ACTION_TIMEOUT_SECONDS: float = 30.0

    # Work Safe export function (generate-report)
    REPORT_EXPORT_URL: str = ""
    REPORT_EXPORT_API_KEY: str = ""
    REPORT_EXPORT_TIMEOUT_SECONDS: float = 60.0

    # Compliance timeline
    TIMELINE_DAYS_BACK: int = 30
    TIMELINE_AUDIT_LIMIT: int = 50
    TIMELINE_NOTIFICATION_LIMIT: int = 20

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

    @property
    def cookie_secure(self) -> bool:
        """Secure cookies only in production."""
        return self.ENV != "dev"


settings = Settings()
