# src/cryptotracker/config.py
"""
Application settings, loaded from the environment and an optional `.env` file.

The rate-limit timings are defaults observed against the public CoinGecko
tier; deployments with a paid key can tighten or relax them here.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment / DB
    ENV: str = Field(default="dev")
    DATABASE_URL: str = Field(default="sqlite:///./cryptotracker.db")

    # Upstream market data
    COINGECKO_API_URL: str = Field(default="https://api.coingecko.com/api/v3")
    COINGECKO_API_KEY: str | None = None
    HTTP_TIMEOUT_SECONDS: float = 10.0
    USER_AGENT: str = "CryptoTracker/1.0"

    # Rate limit governor
    MIN_CALL_INTERVAL_SECONDS: float = Field(default=2.0, ge=0)
    RATE_LIMIT_BACKOFF_SECONDS: float = Field(default=60.0, ge=0)

    # Mediator policy
    STALENESS_THRESHOLD_SECONDS: float = Field(default=60.0, ge=0)
    REFRESH_WAIT_TIMEOUT_SECONDS: float = Field(default=5.0, ge=0)
    TRACKED_TOKEN_LIMIT: int = Field(default=100, ge=1, le=250)

    # Background refresh
    BACKGROUND_REFRESH_ENABLED: bool = True
    REFRESH_INTERVAL_SECONDS: float = Field(default=60.0, gt=0)

    # API
    CORS_ORIGINS: str = "*"

    # Observability
    METRICS_ENABLED: bool = True


settings = Settings()
