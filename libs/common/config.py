from functools import lru_cache
from typing import Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global application settings."""

    # Application
    ENVIRONMENT: Literal["local", "development", "production", "test"] = "local"
    LOG_LEVEL: str = "INFO"
    # Calendar day used for the email daily cap
    TIMEZONE: str = "America/Panama"
    APP_URL: str = "http://localhost:3000"

    # Database
    DATABASE_URL: str
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800

    # Auth (Supabase-issued HS256 tokens)
    SUPABASE_JWT_SECRET: str = "test-jwt-secret"
    CRON_SECRET: str = ""

    # Redis (ARQ worker + rate limiter storage)
    REDIS_URL: str = "redis://localhost:6379/0"
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_STORAGE_URI: str = "memory://"

    # Microservices URLs
    PAYMENTS_SERVICE_URL: str = "http://payments-service:8005"
    COMMUNICATIONS_SERVICE_URL: str = "http://communications-service:8004"

    # Email (Brevo transactional API)
    BREVO_API_KEY: str = ""
    BREVO_API_URL: str = "https://api.brevo.com/v3"
    BREVO_WEBHOOK_SECRET: str = ""
    DEFAULT_FROM_EMAIL: str = "no-reply@academia.local"
    DEFAULT_FROM_NAME: str = "Academia"
    LOGO_URL: str = ""
    EMAIL_DAILY_LIMIT: int = 300

    # Enrollment pricing and reconciliation
    ENROLLMENT_PRICE: float = 80.0
    RECONCILIATION_WINDOW_MINUTES: int = 120
    RECONCILIATION_AMOUNT_TOLERANCE: float = 1.0
    RECONCILIATION_MAX_CANDIDATES: int = 20
    ENROLLMENT_DRAFT_TTL_SECONDS: int = 3600

    # Gateway A: Paguelo Facil
    PAGUELOFACIL_CCLW: str = ""
    PAGUELOFACIL_API_KEY: str = ""
    PAGUELOFACIL_SANDBOX: bool = True

    # Gateway B: Yappy
    YAPPY_MERCHANT_ID: str = ""
    YAPPY_SECRET_KEY: str = ""
    YAPPY_DOMAIN_URL: str = ""
    YAPPY_ENVIRONMENT: Literal["testing", "production"] = "testing"

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("DATABASE_URL")
    @classmethod
    def assemble_db_connection(cls, v: Optional[str]) -> str:
        if isinstance(v, str):
            if v.startswith("postgresql://"):
                return v.replace("postgresql://", "postgresql+psycopg://", 1)
        return v

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")


@lru_cache
def get_settings() -> Settings:
    """
    Return the global settings instance, cached.
    """
    return Settings()
