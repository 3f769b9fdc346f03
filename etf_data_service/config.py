"""
Settings for the ETF data service, loaded from the environment and ``.env``.
Inside a compose stack the MongoDB and Redis hosts default to the service
names ``mongodb`` and ``redis``.
"""

import os
from functools import lru_cache
from typing import List
from urllib.parse import quote_plus

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_IN_DOCKER = os.path.exists("/.dockerenv") or os.environ.get("DOCKER_CONTAINER", "").lower() in ("1", "true", "yes")


def _service_host(compose_name: str):
    return lambda: compose_name if _IN_DOCKER else "localhost"


_DEFAULT_HOLIDAYS = [
    # NYSE 2025
    "2025-01-01", "2025-01-20", "2025-02-17", "2025-04-18", "2025-05-26",
    "2025-06-19", "2025-07-04", "2025-09-01", "2025-11-27", "2025-11-28",
    "2025-12-25",
    # NYSE 2026
    "2026-01-01", "2026-01-19", "2026-02-16", "2026-04-03", "2026-05-25",
    "2026-06-19", "2026-07-03", "2026-09-07", "2026-11-26", "2026-12-25",
]


class DataServiceSettings(BaseSettings):
    """ETF data service settings"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── HTTP ──────────────────────────────────────────────
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8001)
    DEBUG: bool = Field(default=False)
    ALLOWED_ORIGINS: List[str] = Field(default_factory=lambda: ["*"])

    # ── MongoDB record store ──────────────────────────────
    MONGODB_ENABLED: bool = Field(default=True)
    MONGODB_HOST: str = Field(default_factory=_service_host("mongodb"))
    MONGODB_PORT: int = Field(default=27017)
    MONGODB_DATABASE: str = Field(default="etf_data")
    MONGODB_USERNAME: str = Field(default="")
    MONGODB_PASSWORD: str = Field(default="")
    MONGODB_AUTH_SOURCE: str = Field(default="admin")
    MONGO_MIN_CONNECTIONS: int = Field(default=2)
    MONGO_MAX_CONNECTIONS: int = Field(default=20)
    MONGO_SERVER_SELECTION_TIMEOUT_MS: int = Field(default=5000)
    MONGO_CONNECT_TIMEOUT_MS: int = Field(default=10000)
    MONGO_SOCKET_TIMEOUT_MS: int = Field(default=30000)

    @property
    def MONGO_URI(self) -> str:
        target = f"{self.MONGODB_HOST}:{self.MONGODB_PORT}/{self.MONGODB_DATABASE}"
        if not (self.MONGODB_USERNAME and self.MONGODB_PASSWORD):
            return f"mongodb://{target}"
        creds = f"{quote_plus(self.MONGODB_USERNAME)}:{quote_plus(self.MONGODB_PASSWORD)}"
        return f"mongodb://{creds}@{target}?authSource={self.MONGODB_AUTH_SOURCE}"

    # ── Redis run locks ───────────────────────────────────
    REDIS_ENABLED: bool = Field(default=True)
    REDIS_HOST: str = Field(default_factory=_service_host("redis"))
    REDIS_PORT: int = Field(default=6379)
    REDIS_DB: int = Field(default=0)
    REDIS_PASSWORD: str = Field(default="")
    REDIS_MAX_CONNECTIONS: int = Field(default=10)

    @property
    def REDIS_URL(self) -> str:
        auth = f":{quote_plus(self.REDIS_PASSWORD)}@" if self.REDIS_PASSWORD else ""
        return f"redis://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    # ── Scheduled trigger ─────────────────────────────────
    CRON_SECRET: str = Field(default="")

    # ── Polygon.io ────────────────────────────────────────
    POLYGON_API_KEY: str = Field(default="")
    POLYGON_BASE_URL: str = Field(default="https://api.polygon.io")
    POLYGON_TIMEOUT_SECONDS: float = Field(default=30.0)
    POLYGON_MAX_RETRIES: int = Field(default=3)
    POLYGON_RETRY_AFTER_DEFAULT: float = Field(default=5.0)

    # ── Cache TTLs (seconds) ──────────────────────────────
    QUOTE_TTL_SECONDS: int = Field(default=35 * 60)
    DAILY_QUOTE_TTL_SECONDS: int = Field(default=25 * 3600)
    HISTORICAL_TTL_SECONDS: int = Field(default=25 * 3600)
    TOP_PICKS_TTL_SECONDS: int = Field(default=35 * 60)
    RUN_LOG_RETENTION_SECONDS: int = Field(default=30 * 24 * 3600)
    STALENESS_WINDOW_SECONDS: int = Field(default=5 * 60)

    # ── Market hours ──────────────────────────────────────
    MARKET_TIMEZONE: str = Field(default="America/New_York")
    MARKET_OPEN_HOUR: int = Field(default=8)
    MARKET_CLOSE_HOUR: int = Field(default=18)
    MARKET_HOLIDAYS: List[str] = Field(default_factory=lambda: list(_DEFAULT_HOLIDAYS))

    # ── Fetch orchestration ───────────────────────────────
    RATE_LIMIT_DELAY_SECONDS: float = Field(default=12.0)   # free tier: 5 calls/min
    BATCH_DELAY_SECONDS: float = Field(default=15.0)
    REALTIME_BATCH_SIZE: int = Field(default=10)
    DAILY_BATCH_SIZE: int = Field(default=10)
    HISTORICAL_DAYS_FIRST_FETCH: int = Field(default=90)
    HISTORICAL_DAYS_INCREMENTAL: int = Field(default=1)
    RUN_LOCK_TTL_SECONDS: int = Field(default=30 * 60)

    # ── AI analysis ───────────────────────────────────────
    AI_MODE: str = Field(default="hybrid")                 # hybrid | single
    AI_SCORING_PROVIDER: str = Field(default="openai")
    AI_EXPLANATION_PROVIDER: str = Field(default="claude")
    AI_SENTIMENT_PROVIDER: str = Field(default="xai")
    AI_FALLBACK_PROVIDER: str = Field(default="openai")
    AI_BATCH_CONCURRENCY: int = Field(default=5)
    AI_HEURISTIC_ENABLED: bool = Field(default=False)
    AI_REQUEST_TIMEOUT_SECONDS: float = Field(default=30.0)
    OPENAI_API_KEY: str = Field(default="")
    OPENAI_MODEL: str = Field(default="gpt-4o-mini")
    ANTHROPIC_API_KEY: str = Field(default="")
    ANTHROPIC_MODEL: str = Field(default="claude-3-5-sonnet-latest")
    XAI_API_KEY: str = Field(default="")
    XAI_MODEL: str = Field(default="grok-2")
    XAI_BASE_URL: str = Field(default="https://api.x.ai/v1")

    # ── Logging ───────────────────────────────────────────
    LOG_LEVEL: str = Field(default="INFO")


@lru_cache
def get_settings() -> DataServiceSettings:
    """Process-wide settings (cached)"""
    return DataServiceSettings()
