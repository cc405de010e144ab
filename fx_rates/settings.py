"""Application settings for fx_rates."""
from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables."""

    APP_NAME: str = "fx_rates"
    LOG_LEVEL: str = "INFO"

    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Upstream provider (exchangerate-api.com compatible). Base currency is appended as a path segment.
    EXCHANGE_RATE_API_URL: str = "https://open.er-api.com/v6/latest"
    EXCHANGE_RATE_API_KEY: Optional[str] = None
    EXCHANGE_RATE_CACHE_TTL_HOURS: int = 24
    HTTP_TIMEOUT: float = 8.0

    # Shared secret for the scheduled refresh endpoint
    EXCHANGE_RATE_CRON_SECRET: Optional[str] = None

    # Unset keeps the cache in process memory only
    DB_PATH: Optional[str] = None

    # CSV, e.g. "USD,EUR,GBP,UAH"
    REFRESH_CURRENCIES: Optional[str] = None

    # Sidecar cron caller
    CRON_BASE_URL: str = "http://localhost:8000"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    def validate_ttl(self) -> None:
        if self.EXCHANGE_RATE_CACHE_TTL_HOURS <= 0:
            raise ValueError("EXCHANGE_RATE_CACHE_TTL_HOURS must be positive")

    def refresh_currency_list(self) -> List[str]:
        if not self.REFRESH_CURRENCIES:
            return []
        return [s.strip().upper() for s in str(self.REFRESH_CURRENCIES).split(",") if s.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    settings = Settings()
    settings.validate_ttl()
    return settings


settings = get_settings()
