"""Central configuration via Pydantic Settings."""
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from CARDFLOW_* environment variables / .env file."""

    # Use PostgreSQL in production, SQLite locally
    database_url: str = "sqlite:///./cardflow.db"

    log_level: str = "INFO"

    # Platform-wide SLA thresholds, used when a tenant has not saved its own
    sla_default_warning_hours: int = 24
    sla_default_breach_hours: int = 48

    # Notification wording
    portal_name: str = "Brandtelligence portal"
    notification_signature: str = "Brandtelligence AI Content Studio"

    model_config = SettingsConfigDict(
        env_prefix="CARDFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    @property
    def effective_database_url(self) -> str:
        # Render/Heroku hand out postgres:// but SQLAlchemy needs postgresql://
        if self.database_url.startswith("postgres://"):
            return self.database_url.replace("postgres://", "postgresql://", 1)
        return self.database_url


settings = Settings()
