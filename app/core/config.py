# app/core/config.py
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Centralized application settings loaded from environment.

    Required env vars (.env):
      - DATABASE_URL (Supabase Postgres connection string)
      - SUPABASE_JWT_SECRET (JWT signing secret from Supabase project settings)

    Everything else has a sensible default for FinePharma Wholesale.
    """

    PROJECT_NAME: str = "FinePharma Wholesale API"
    API_V1_STR: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    # DB config
    DATABASE_URL: str

    # JWT verification (backend-side)
    SUPABASE_JWT_SECRET: str
    SUPABASE_JWT_ALG: str = "HS256"

    # Local calendar used for "today" statistics
    TIMEZONE: str = "Asia/Kolkata"

    # Business identifiers: <PREFIX>-<YEAR>-<5 digits>
    ORDER_ID_PREFIX: str = "FPW"
    INVOICE_ID_PREFIX: str = "FPW"
    ID_MAX_ATTEMPTS: int = 5

    # Invoice tax convention: CGST and SGST at this rate each
    INVOICE_TAX_RATE_PER_COMPONENT: float = 2.5
    DEFAULT_HSN_CODE: str = "3004"
    DEFAULT_GST_RATE_PCT: float = 5.0

    DEFAULT_LOW_STOCK_THRESHOLD: int = 10
    SHIPPING_FEE: float = 0.0

    # False => a repeated generate call returns the existing invoice
    STRICT_INVOICE_UNIQUENESS: bool = False
    # False => any status in the set may follow any other
    ENFORCE_STATUS_TRANSITIONS: bool = True

    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
    ]

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings loader.
    Ensures we don't re-parse .env on every import / request.
    """
    return Settings()
