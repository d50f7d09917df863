"""
Configuration management using Pydantic Settings
"""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Core
    mongodb_uri: str = "mongodb://localhost:27017"  # Override via MONGODB_URI env var in production
    mongodb_db_name: str = "traffic_monitor"
    storage_backend: str = "mongodb"  # mongodb | memory

    # CORS Configuration
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"  # Comma-separated list, override via CORS_ORIGINS env var

    # Upstream camera API (trafic.mx)
    traffic_api_base_url: str = "https://api.trafic.mx"
    live_counts_path: str = "/api/v1/live/counts"
    hourly_stats_path: str = "/api/v1/statistics/hourly"
    upstream_timeout_seconds: float = 30.0
    upstream_user_agent: str = "Trafic.mx-Dashboard/1.0"

    # Wall clock used for hour-of-day, daily windows and scheduler gating
    local_timezone: str = "UTC"

    # Scheduling
    scheduler_enabled: bool = True
    scheduler_tick_minutes: int = 5
    hourly_window_minutes: int = 5  # hourly fetch runs when minute-of-hour < this
    daily_aggregation_hour: int = 1

    # Retention (admin cleanup)
    retention_days: int = 90

    # Application
    debug: bool = False
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = False

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list"""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


# Global settings instance
settings = Settings()
