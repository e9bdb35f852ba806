from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv
from typing import Optional

load_dotenv()

DEFAULT_ENGAGEMENT_WEIGHTS: dict[str, float] = {
    "views": 0.15,
    "likes": 0.25,
    "shares": 0.20,
    "clicks": 0.15,
    "replies": 0.10,
    "follows": 0.10,
    "bookmarks": 0.05,
}


class Settings(BaseSettings):
    # Application settings
    app_name: str = "Trackable Analytics"
    app_version: str = "1.0.0"
    debug: bool = False
    environment: str = "development"
    log_level: str = "INFO"
    json_logs: bool = False

    # Database settings
    database_url: str = "sqlite+aiosqlite:///./analytics.db"

    # Tracking settings
    analytics_enabled: bool = True
    analytics_track_bots: bool = False
    tracked_actions: list[str] = ["show", "index", "view", "display"]

    # Geolocation settings
    geolocation_enabled: bool = True
    geolocation_cache_ttl_days: int = 30
    geolocation_timeout_seconds: float = 3.0
    geolocation_providers: list[str] = ["ip-api", "ipapi", "ipwhois", "freeipapi"]

    # Retention settings (days)
    retention_views_days: int = 365
    retention_analytics_days: int = 730
    retention_periods_days: int = 1095

    # Aggregation settings
    aggregation_enabled: bool = True
    aggregation_batch_size: int = 1000
    aggregation_interval_minutes: int = 60
    retention_interval_hours: int = 24

    # Scoring
    engagement_weights: dict[str, float] = dict(DEFAULT_ENGAGEMENT_WEIGHTS)

    # Admin endpoints
    admin_api_key: Optional[str] = None

    # Redis settings
    redis_url: Optional[str] = None
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def engagement_weight(self, key: str) -> float:
        """Configured weight for ``key``, falling back to the built-in default."""
        if key in self.engagement_weights:
            return self.engagement_weights[key]
        return DEFAULT_ENGAGEMENT_WEIGHTS.get(key, 0.0)


settings = Settings()
