"""Application settings using Pydantic."""
from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    This uses Pydantic to:
    1. Load values from .env file
    2. Validate data types
    3. Provide defaults
    """

    # API Settings
    PROJECT_NAME: str = "Tabline Order Core"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"

    # Server Settings
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Environment & Logging
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"
    # "simple" or "json"
    LOG_FORMAT: str = "plain"
    LOG_DIR: str = "logs"
    LOG_TO_FILE: bool = True

    # Database
    DATABASE_URL: str = "sqlite:///./db/tabline.db"
    DB_ECHO: bool = False
    # Bounded retries for idempotent store transactions (rate-limit check, tab creation)
    STORE_TRANSACTION_RETRIES: int = 3

    # Celery; falls back to the local redis broker in celery_config
    CELERY_BROKER_URL: Optional[str] = None
    CELERY_RESULT_BACKEND: Optional[str] = None

    # Security - bearer tokens are issued elsewhere, we only verify them
    SECRET_KEY: str = "dev-secret-change-me"
    JWT_ALGORITHM: str = "HS256"

    # CORS
    BACKEND_CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:8000",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:8000",
    ]

    # Rate limiting
    IP_RATE_LIMIT_PER_MINUTE: int = 20
    ORDER_RATE_LIMIT_PER_MINUTE: int = 50
    # Write requests under these prefixes pass through the per-IP limiter
    RATE_LIMITED_PATHS: List[str] = [
        "/api/v1/orders/create",
        "/api/v1/dine-in/create-tab",
        "/api/v1/dine-in/join-table",
    ]

    # Idempotency
    IDEMPOTENCY_STALE_SECONDS: int = 30

    # Dine-in
    STALE_TAB_WINDOW_HOURS: int = 24
    STALE_TAB_SWEEP_DRY_RUN: bool = True

    # Retention sweeps
    RETENTION_DAYS: int = 7
    RATE_LIMIT_RETENTION_HOURS: int = 168

    # Modern Pydantic configuration - ignore extra fields
    # Load environment variables from .env; extra fields are ignored.
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_file_encoding='utf-8',
        extra="ignore"  # Ignore extra environment variables
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Create cached settings instance.
    """
    return Settings()


# Create a single instance for easy importing
settings = get_settings()
