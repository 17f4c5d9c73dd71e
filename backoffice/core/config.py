"""
Back Office Configuration
Core settings for the ledger and reconciliation service
"""
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from decimal import Decimal
from pathlib import Path


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Application Info
    APP_NAME: str = "Back Office Ledger API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Database Configuration
    DATABASE_URL: str = "sqlite:///./backoffice.db"
    DATABASE_POOL_SIZE: int = 10
    DATABASE_MAX_OVERFLOW: int = 20
    AUTO_CREATE_TABLES: bool = True

    # CORS
    ALLOWED_HOSTS: list = ["*"]
    CORS_ORIGINS: list = [
        "http://localhost:3000",  # Next.js frontend
    ]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_TO_FILE: bool = False
    LOG_DIR: Path = Path("logs")
    LOG_FILE: str = "app.log"
    ERROR_LOG_FILE: str = "error.log"

    # Business Logic Settings
    DEFAULT_CURRENCY: str = "usd"
    DEFAULT_VAT_RATE: Decimal = Decimal("11.0")
    BALANCE_TOLERANCE: Decimal = Decimal("0.01")
    LOW_STOCK_THRESHOLD: int = 5
    SHIPPING_NUMBER_PREFIX_CLIENT: str = "CSH"
    SHIPPING_NUMBER_PREFIX_SUPPLIER: str = "SSH"
    PRODUCT_TIMELINE_LIMIT: int = 50
    VARIANT_HISTORY_LIMIT: int = 20

    # Aggregation cache
    CACHE_ENABLED: bool = True
    CACHE_TTL_SECONDS: int = 300
    CACHE_MAX_ENTRIES: int = 1024

    # API Configuration
    API_V1_STR: str = "/api/v1"
    DOCS_URL: str = "/docs"
    REDOC_URL: str = "/redoc"
    OPENAPI_URL: str = "/openapi.json"

    # Email Settings (invoice and receipt mail)
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_USE_TLS: bool = True
    MAIL_FROM: str = "noreply@backoffice.local"

    @field_validator("LOG_LEVEL")
    @classmethod
    def normalise_log_level(cls, v: str) -> str:
        """Accept lower case level names from the environment"""
        return v.upper()

    @field_validator("DEFAULT_CURRENCY")
    @classmethod
    def normalise_currency(cls, v: str) -> str:
        return v.lower()

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")


# Global settings instance
settings = Settings()

# Database connection string for SQLAlchemy
DATABASE_URL = settings.DATABASE_URL
