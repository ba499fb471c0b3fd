from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central application configuration."""

    PROJECT_NAME: str = "Purchase Planner"
    API_V1_PREFIX: str = "/api/v1"
    ENVIRONMENT: str = Field(default="local", validation_alias="ENV", description="Deployment environment")

    # Database
    DATABASE_URL: str = Field(default="sqlite:///./planner.db")

    # Background jobs (Celery/Redis)
    CELERY_BROKER_URL: str = Field(default="redis://localhost:6379/0")
    CELERY_RESULT_BACKEND: str = Field(default="redis://localhost:6379/1")
    DAILY_SYNC_HOUR: int = Field(default=1, description="Local hour for the nightly sync")

    # Observability
    LOG_LEVEL: str = Field(default="INFO")

    # Business calendar ("today", month boundaries)
    TIMEZONE: str = Field(default="America/Santiago")

    # ERP (Manager+)
    ERP_BASE_URL: str = Field(default="")
    ERP_USERNAME: str = Field(default="")
    ERP_PASSWORD: str = Field(default="")
    ERP_COMPANY_ID: str = Field(default="", description="Company RUT used in ERP paths")
    ERP_AUTH_SCHEME: str = Field(default="Token")
    ERP_TOKEN_TTL_SECONDS: int = Field(default=3600)
    ERP_DOCUMENT_KINDS: List[str] = Field(default_factory=lambda: ["FAVE", "BOVE", "NCVE"])
    ERP_LIST_TIMEOUT_SECONDS: float = Field(default=120.0)
    ERP_DETAIL_TIMEOUT_SECONDS: float = Field(default=60.0)
    ERP_RATE_LIMIT_DEFAULT_RETRY_SECONDS: float = Field(default=10.0)
    ERP_RATE_LIMIT_MAX_ATTEMPTS: int = Field(default=5)
    ERP_DETAIL_MAX_RETRIES: int = Field(default=2)
    ERP_MAX_RANGE_DAYS: int = Field(default=365)

    # Sync throttling
    SYNC_DETAIL_BATCH_SIZE: int = Field(default=20)
    SYNC_DETAIL_BATCH_DELAY_SECONDS: float = Field(default=0.5)

    # Retention
    RETENTION_MONTHS: int = Field(default=12)

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


settings = Settings()
