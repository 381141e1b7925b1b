from pydantic_settings import BaseSettings
from pydantic import field_validator
from decimal import Decimal
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./retail_core.db"

    # Database Connection Pool Settings (ignored for SQLite)
    DB_POOL_SIZE: int = 10  # Base number of connections in pool
    DB_MAX_OVERFLOW: int = 20  # Extra connections allowed beyond pool_size
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for connection from pool
    DB_POOL_RECYCLE: int = 1800  # Recycle connections after 30 minutes

    # App Settings
    APP_NAME: str = "Retail Transaction Core"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Sales
    DEFAULT_PAYMENT_METHOD: str = "CASH"

    # Document numbering: {PREFIX}{YYYYMMDD}{SEQ}
    INVOICE_PREFIX: str = "INV"
    RETURN_PREFIX: str = "RET"
    DOCUMENT_NUMBER_PADDING: int = 3
    DOCUMENT_NUMBER_MAX_RETRIES: int = 10
    DOCUMENT_NUMBER_RETRY_DELAY_MS: int = 50

    # Payment reconciliation thresholds (currency units / percent of total)
    PAYMENT_EPSILON: Decimal = Decimal("0.01")
    CONVENIENCE_MAX_AMOUNT: Decimal = Decimal("5")
    CONVENIENCE_MAX_PERCENT: Decimal = Decimal("1")
    CASH_SHORTAGE_MAX_AMOUNT: Decimal = Decimal("20")
    CASH_SHORTAGE_MAX_PERCENT: Decimal = Decimal("2")
    SYSTEM_ERROR_MIN_PERCENT: Decimal = Decimal("5")
    APPROVAL_AMOUNT_THRESHOLD: Decimal = Decimal("20")
    APPROVAL_PERCENT_THRESHOLD: Decimal = Decimal("2")

    @field_validator('DEFAULT_PAYMENT_METHOD', 'INVOICE_PREFIX', 'RETURN_PREFIX', mode='before')
    @classmethod
    def uppercase_codes(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
