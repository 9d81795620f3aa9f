"""Application configuration."""

from pathlib import Path
from typing import Any

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # API Settings
    API_V1_STR: str = "/v1"
    PROJECT_NAME: str = "Conversation Export API"

    # CORS
    ALLOWED_HOSTS: list[str] = ["http://localhost:3000", "http://localhost:3001"]

    # Database
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "conversation_exports"
    POSTGRES_PORT: int = 5432
    DATABASE_URL: str | None = Field(default=None, validate_default=True)

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def assemble_db_connection(cls, v: str | None, info: ValidationInfo) -> Any:
        """Assemble database URL from components."""
        if isinstance(v, str) and v:
            return v
        values = info.data
        return (
            f"postgresql+asyncpg://{values.get('POSTGRES_USER')}:{values.get('POSTGRES_PASSWORD')}"
            f"@{values.get('POSTGRES_SERVER')}:{values.get('POSTGRES_PORT')}/{values.get('POSTGRES_DB') or ''}"
        )

    # Redis / Celery
    REDIS_URL: str = "redis://localhost:6379"
    CELERY_BROKER_URL: str | None = None
    CELERY_RESULT_BACKEND: str | None = None

    # Export storage
    EXPORTS_DIR: Path = Path("exports")
    MEDIA_ROOT: Path = Path(".")
    PUBLIC_BASE_URL: str = ""

    # Export policy
    EXPORT_EXPIRATION_DAYS: int = 7
    EXPORT_MAX_ATTEMPTS: int = 3
    EXPORT_RETRY_BACKOFF: int = 1  # seconds, doubled per retry
    EXPORT_PREVIEW_MESSAGES: int = 5
    EXPORT_PREVIEW_SNIPPET_LENGTH: int = 160
    EXPORT_LIST_LIMIT: int = 20
    EXPORT_CLEANUP_BATCH_SIZE: int = 200

    # Observability
    LOG_LEVEL: str = "INFO"

    @property
    def media_base_url(self) -> str:
        """Public base URL without a trailing slash."""
        return self.PUBLIC_BASE_URL.rstrip("/")

    @property
    def staging_dir(self) -> Path:
        """Root for job-scoped staging directories."""
        return self.EXPORTS_DIR / "staging"

    class Config:
        """Pydantic config."""
        env_file = ".env"
        case_sensitive = True


settings = Settings()
