"""Application settings and configuration."""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_INTERNAL_API_KEY = "scheduler-internal-key-change-in-production"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: Optional[str] = None
    postgres_user: str = "riskaccept"
    postgres_password: str = "riskaccept_dev_password"
    postgres_db: str = "riskaccept"
    postgres_port: int = 5432

    # Redis (Celery broker)
    redis_url: str = "redis://localhost:6379/0"

    # API
    environment: str = "development"
    app_base_url: str = "http://localhost:3000"

    # Scheduler endpoints
    internal_api_key: str = DEFAULT_INTERNAL_API_KEY

    # Logging
    log_level: str = "INFO"

    # References
    reference_prefix: str = "RA-"
    reference_min_digits: int = 3

    # Notifications
    notification_backend: str = "celery"  # celery, log
    notification_relay_url: Optional[str] = None
    notification_timeout_seconds: int = 10
    notification_max_retries: int = 3

    # Expiry sweep
    expiry_sweep_interval_seconds: int = 3600

    # CORS
    cors_origins: list[str] = ["*"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["*"]

    @property
    def database_url_computed(self) -> str:
        """Compute database URL if not explicitly set."""
        if self.database_url:
            return self.database_url
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@localhost:{self.postgres_port}/{self.postgres_db}"
        )

    def validate_production_settings(self):
        """Validate settings for production environment."""
        env = self.environment.lower()
        if env not in ("development", "test", "dev"):
            if self.internal_api_key == DEFAULT_INTERNAL_API_KEY:
                raise ValueError(
                    "INTERNAL_API_KEY must be set in production. "
                    "Do not use the default scheduler key."
                )
            if self.notification_backend == "celery" and not self.notification_relay_url:
                raise ValueError(
                    "NOTIFICATION_RELAY_URL is required when NOTIFICATION_BACKEND=celery "
                    "outside development."
                )
            if self.notification_backend not in ("celery", "log"):
                raise ValueError(
                    f"Unknown NOTIFICATION_BACKEND={self.notification_backend}. "
                    "Use 'celery' or 'log'."
                )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
