from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from app.core.version import __version__


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="allow",
    )

    APP_NAME: str = "DLsite Catalog"
    APP_ENV: Literal["development", "production"] = "production"
    LOG_LEVEL: str = "INFO"

    REDIS_URL: str = "redis://localhost:6379/0"
    # Maximum number of connections Redis client will open per process
    REDIS_MAX_CONNECTIONS: int = 20
    REDIS_KEY_PREFIX: str = "dlsite:"

    DLSITE_BASE_URL: str = "https://www.dlsite.com"

    # Detail fetch pool size; adjustable at runtime
    FETCH_CONCURRENCY: int = 8
    DETAILS_CACHE_TTL_SECONDS: int = 3600
    RANKING_CACHE_TTL_SECONDS: int = 3600
    CACHE_GC_INTERVAL_SECONDS: int = 600

    LISTING_TIMEOUT_SECONDS: float = 15.0
    DETAIL_TIMEOUT_SECONDS: float = 10.0
    HTTP_MAX_RETRIES: int = 3
    HTTP_RETRY_BASE_DELAY: float = 1.0

    # Politeness delays between requests
    PAGE_DELAY_SECONDS: float = 1.5
    DETAIL_DELAY_SECONDS: float = 0.8
    RANKING_ITEM_DELAY_SECONDS: float = 0.12

    CRAWL_MAX_OLDER_STREAK: int = 60
    CRAWL_MAX_PAGES: int = 200

    ALLOW_SAMPLE: bool = False
    RENDER_FALLBACK_ENABLED: bool = True
    RENDER_TIMEOUT_SECONDS: float = 30.0


settings = Settings()

APP_VERSION = __version__
