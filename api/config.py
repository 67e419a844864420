"""API configuration from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "postgresql+asyncpg://fieldroute:fieldroute@db:5432/fieldroute"
    REDIS_URL: str = "redis://redis:6379/0"
    AUTO_CREATE_TABLES: bool = True
    LOG_LEVEL: str = "INFO"

    # Maps providers
    GEOAPIFY_API_KEY: str | None = None
    NOMINATIM_COUNTRY_CODES: str = "us"
    NOMINATIM_USER_AGENT: str = "FieldRoute/1.0 (ops@fieldroute.app)"
    HTTP_TIMEOUT_SEC: float = 10.0
    GEOCODE_CACHE_TTL_SEC: int = 30 * 24 * 3600   # 30 days
    DISTANCE_CACHE_TTL_SEC: int = 2 * 3600         # 2 hours
    HAVERSINE_FALLBACK: bool = False  # opt-in; otherwise a routing failure fails planning
    AVG_SPEED_KMH: float = 40.0

    # Planning
    PLANNING_TIMEOUT_SEC: float = 20.0
    DEFAULT_START_TIME: str = "09:00"

    # Status-change webhook (fire-and-forget)
    STATUS_WEBHOOK_URL: str | None = None

    class Config:
        env_file = ".env"
        extra = "allow"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
