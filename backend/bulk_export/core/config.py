"""
Application Configuration
=========================

Centralized configuration using Pydantic Settings.
All configuration is loaded from environment variables with sensible defaults.
"""

from datetime import timedelta
from typing import Annotated, List, Optional
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Settings are validated using Pydantic and cached for performance.
    Values come from the process environment or a local .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Application
    # -------------------------------------------------------------------------
    APP_NAME: str = "Claims Bulk Export"
    APP_ENV: str | None = None
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    VERSION: str = "latest"

    # -------------------------------------------------------------------------
    # API
    # -------------------------------------------------------------------------
    API_PREFIX: str = "/api/v1"
    # Base host used when templating manifest download URLs.
    PUBLIC_URL: str = "http://localhost:3000"

    # -------------------------------------------------------------------------
    # Security
    # -------------------------------------------------------------------------
    # Token provider: "alpha" (RS512, local key pair) | "local" (HS256 shared secret)
    AUTH_PROVIDER: str = "alpha"
    SECRET_KEY: str | None = None
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    JWT_PRIVATE_KEY_FILE: str | None = None
    JWT_PUBLIC_KEY_FILE: str | None = None

    # -------------------------------------------------------------------------
    # Database
    # -------------------------------------------------------------------------
    POSTGRES_HOST: str | None = None
    POSTGRES_PORT: int | None = None
    POSTGRES_USER: str | None = None
    POSTGRES_PASSWORD: str | None = None
    POSTGRES_DB: str | None = None

    # Optional full DSN overrides (used by some deployments and tooling)
    POSTGRES_URL: Optional[str] = None
    POSTGRES_URL_SYNC: Optional[str] = None

    # Test-only DB overrides (used by pytest fixtures)
    TEST_DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL_SYNC: Optional[str] = None

    @property
    def DATABASE_URL(self) -> str:
        """Build the async database URL."""
        if self.APP_ENV == "test" and self.TEST_DATABASE_URL:
            return self.TEST_DATABASE_URL
        if self.POSTGRES_URL:
            return self.POSTGRES_URL
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def DATABASE_URL_SYNC(self) -> str:
        """Build the sync database URL (for Alembic)."""
        if self.APP_ENV == "test" and self.TEST_DATABASE_URL_SYNC:
            return self.TEST_DATABASE_URL_SYNC
        if self.POSTGRES_URL_SYNC:
            return self.POSTGRES_URL_SYNC
        return (
            f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    # -------------------------------------------------------------------------
    # Celery / work queue
    # -------------------------------------------------------------------------
    CELERY_BROKER_URL: str | None = None
    CELERY_RESULT_BACKEND: str | None = None
    EXPORT_QUEUE_NAME: str = "q.export_units"
    # Fixed-size worker pool (Celery worker concurrency).
    WORKER_POOL_SIZE: int = Field(default=2, ge=1)
    # Redelivery budget for a unit that fails on storage/encryption.
    UNIT_MAX_RETRIES: int = Field(default=5, ge=0)
    UNIT_RETRY_BACKOFF_SECONDS: int = Field(default=30, ge=1)

    # -------------------------------------------------------------------------
    # Export pipeline
    # -------------------------------------------------------------------------
    # Maximum number of beneficiaries per unit of work.
    BCDA_FHIR_MAX_RECORDS: int = Field(default=10000, ge=1)
    # Hours after job creation before a completed job's files expire.
    ARCHIVE_THRESHOLD_HR: float = 24
    FHIR_STAGING_DIR: str = "data/staging"
    FHIR_PAYLOAD_DIR: str = "data/payload"

    ENABLE_PATIENT_EXPORT: bool = True
    ENABLE_COVERAGE_EXPORT: bool = True

    # -------------------------------------------------------------------------
    # Encryption
    # -------------------------------------------------------------------------
    ENCRYPTION_ENABLED: bool = True
    # Resource types exported in plaintext (comma-separated in env).
    UNENCRYPTED_RESOURCE_TYPES: Annotated[List[str], NoDecode] = Field(default_factory=list)
    ATO_PUBLIC_KEY_FILE: str | None = None
    ATO_PRIVATE_KEY_FILE: str | None = None

    @field_validator("UNENCRYPTED_RESOURCE_TYPES", mode="before")
    @classmethod
    def parse_resource_types(cls, v):
        """Parse resource types from a comma-separated string or list."""
        if v is None:
            return []
        if isinstance(v, str):
            return [t.strip() for t in v.split(",") if t.strip()]
        return v

    # -------------------------------------------------------------------------
    # Blue Button (external data source)
    # -------------------------------------------------------------------------
    BB_SERVER_LOCATION: str = "https://sandbox.bluebutton.cms.gov"
    BB_CLIENT_CERT_FILE: str | None = None
    BB_CLIENT_KEY_FILE: str | None = None
    BB_CLIENT_CA_FILE: str | None = None
    BB_TIMEOUT_SECONDS: float = 30.0

    # -------------------------------------------------------------------------
    # Helper Methods
    # -------------------------------------------------------------------------

    @property
    def job_ttl(self) -> timedelta:
        """Job time-to-live. A negative threshold is a configuration error."""
        if self.ARCHIVE_THRESHOLD_HR < 0:
            raise ValueError(f"ARCHIVE_THRESHOLD_HR must not be negative (got {self.ARCHIVE_THRESHOLD_HR})")
        return timedelta(hours=self.ARCHIVE_THRESHOLD_HR)

    @property
    def allowed_resource_types(self) -> tuple[str, ...]:
        types = ["ExplanationOfBenefit"]
        if self.ENABLE_PATIENT_EXPORT:
            types.append("Patient")
        if self.ENABLE_COVERAGE_EXPORT:
            types.append("Coverage")
        return tuple(types)

    def encryption_enabled_for(self, resource_type: str) -> bool:
        return self.ENCRYPTION_ENABLED and resource_type not in self.UNENCRYPTED_RESOURCE_TYPES

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.APP_ENV == "development"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once and reused.

    Returns:
        Settings: Validated settings instance
    """
    return Settings()


# Global settings instance
settings = get_settings()
