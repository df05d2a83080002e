"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version
    VERSION: str = "0.06.00"

    # Logging
    LOG_LEVEL: str = "INFO"

    # Database (embedded SQLite by default)
    DATABASE_URL: str = "sqlite:///./orgtree.db"

    # Ownership transfers
    TRANSFER_EXPIRY_DAYS: int = 7
    TRANSFER_REASON_MIN_LENGTH: int = 10
    TRANSFER_LIST_MAX_LIMIT: int = 100

    # Proxy/Load Balancer Settings
    # Set to True when running behind nginx/Cloudflare to trust X-Forwarded-For
    TRUST_PROXY_HEADERS: bool = False

    # Identity header set by an authenticating reverse proxy (empty = disabled)
    TRUSTED_USER_HEADER: str = ""

    # Internal scheduled endpoints (cron jobs)
    INTERNAL_SECRET: str = ""

    # Transactional email (Resend)
    RESEND_API_KEY: str = ""
    EMAIL_FROM: str = "OrgTree <noreply@orgtree.local>"
    FRONTEND_URL: str = "http://localhost:3000"

    # Background notification dispatch (0 = inline)
    NOTIFICATION_WORKERS: int = 2

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def transfer_expiry_seconds(self) -> int:
        return self.TRANSFER_EXPIRY_DAYS * 24 * 60 * 60


settings = Settings()
