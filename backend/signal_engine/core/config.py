"""
Application Configuration

All settings loaded from environment variables.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings from environment variables."""

    # Application
    app_name: str = "Signal Engine"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: str = "development"
    log_level: str = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # CORS
    allowed_origins: list[str] = ["http://localhost:3000"]

    # Aggregation
    min_candles: int = 14  # Below this the aggregator refuses the series
    price_change_lookback: int = 24  # Candles back for price_change_24h
    volume_change_lookback: int = 24  # Window of the average volume baseline

    # Adaptive degradation
    shallow_min_candles: int = 5  # Absolute floor for shallow-degradation indicators
    period_floor: int = 2  # Smallest effective period after shrinking

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
