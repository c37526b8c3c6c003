"""Application configuration settings."""

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, Optional

from workforce_sync.services.scheduling_client import SchedulingApiConfig


@dataclass
class SchedulingApiSettings:
    """External scheduling platform connection settings."""

    base_url: str = ""
    session_cookie: str = ""
    timeout_seconds: float = 30.0
    max_retries: int = 3
    initial_retry_delay: float = 1.0
    max_retry_delay: float = 30.0
    retry_multiplier: float = 2.0

    def to_client_config(self) -> SchedulingApiConfig:
        """Build the explicit client configuration handed to the API client."""
        return SchedulingApiConfig(
            base_url=self.base_url,
            session_cookie=self.session_cookie,
            timeout_seconds=self.timeout_seconds,
            max_retries=self.max_retries,
            initial_retry_delay=self.initial_retry_delay,
            max_retry_delay=self.max_retry_delay,
            retry_multiplier=self.retry_multiplier,
        )


@dataclass
class ImportSettings:
    """File import configuration."""

    chunk_size: int = 50
    max_rows: int = 50000
    preview_rows: int = 50


@dataclass
class SyncSettings:
    """Synchronization job configuration."""

    chunk_size: int = 50
    default_days_back: int = 7
    max_days_back: int = 365

    # Unattended daily run
    cron_hour_utc: int = 2
    cron_minute: int = 0
    cron_days_back: int = 7


@dataclass
class DataQualitySettings:
    """Thresholds used by the data quality rules."""

    # Gap in hours -> severity, checked from most to least urgent
    hour_gap_thresholds: Dict[str, float] = field(default_factory=lambda: {
        "critica": 40.0,
        "alta": 16.0,
        "media": 8.0,
    })

    # Cost per hour outlier detection
    outlier_std_devs: float = 2.0
    outlier_min_population: int = 3
    outlier_critical_z: float = 3.0
    outlier_high_z: float = 2.5

    # Daily unattended recalculation window
    scheduled_window_days: int = 31


@dataclass
class CelerySettings:
    """Background worker configuration."""

    broker_url: str = "redis://localhost:6379/1"
    result_backend: str = "redis://localhost:6379/2"
    timezone: str = "UTC"
    alert_evaluation_minute: int = 15


@dataclass
class Settings:
    """Main application settings."""

    # Application info
    app_name: str = "Workforce Sync API"
    app_version: str = "1.0.0"
    debug: bool = False

    # Database
    database_url: str = ""
    database_pool_size: int = 5
    database_max_overflow: int = 10

    scheduling_api: SchedulingApiSettings = field(default_factory=SchedulingApiSettings)
    imports: ImportSettings = field(default_factory=ImportSettings)
    sync: SyncSettings = field(default_factory=SyncSettings)
    data_quality: DataQualitySettings = field(default_factory=DataQualitySettings)
    celery: CelerySettings = field(default_factory=CelerySettings)

    @classmethod
    def from_env(cls) -> "Settings":
        """Create settings from environment variables."""
        redis_url = os.getenv("REDIS_URL")
        return cls(
            app_name=os.getenv("APP_NAME", "Workforce Sync API"),
            app_version=os.getenv("APP_VERSION", "1.0.0"),
            debug=os.getenv("DEBUG", "false").lower() == "true",
            database_url=os.getenv(
                "DATABASE_URL",
                f"postgresql://{os.getenv('DB_USER', 'postgres')}:{os.getenv('DB_PASSWORD', '')}@"
                f"{os.getenv('DB_HOST', 'localhost')}:{os.getenv('DB_PORT', '5432')}/"
                f"{os.getenv('DB_NAME', 'workforce')}"
            ),
            database_pool_size=int(os.getenv("DB_POOL_SIZE", "5")),
            database_max_overflow=int(os.getenv("DB_MAX_OVERFLOW", "10")),
            scheduling_api=SchedulingApiSettings(
                base_url=os.getenv("SCHEDULING_API_BASE_URL", ""),
                session_cookie=os.getenv("SCHEDULING_API_SESSION_COOKIE", ""),
                timeout_seconds=float(os.getenv("SCHEDULING_API_TIMEOUT", "30")),
                max_retries=int(os.getenv("SCHEDULING_API_MAX_RETRIES", "3")),
                initial_retry_delay=float(os.getenv("SCHEDULING_API_RETRY_DELAY", "1.0")),
            ),
            imports=ImportSettings(
                chunk_size=int(os.getenv("IMPORT_CHUNK_SIZE", "50")),
                max_rows=int(os.getenv("IMPORT_MAX_ROWS", "50000")),
            ),
            sync=SyncSettings(
                chunk_size=int(os.getenv("SYNC_CHUNK_SIZE", "50")),
                default_days_back=int(os.getenv("SYNC_DEFAULT_DAYS_BACK", "7")),
                cron_days_back=int(os.getenv("SYNC_CRON_DAYS_BACK", "7")),
            ),
            data_quality=DataQualitySettings(
                outlier_std_devs=float(os.getenv("DQ_OUTLIER_STD_DEVS", "2.0")),
            ),
            celery=CelerySettings(
                broker_url=os.getenv("CELERY_BROKER_URL", redis_url or "redis://localhost:6379/1"),
                result_backend=os.getenv("CELERY_RESULT_BACKEND", redis_url or "redis://localhost:6379/2"),
            ),
        )


# Singleton settings instance
_settings: Optional[Settings] = None


@lru_cache()
def get_settings() -> Settings:
    """Get application settings (cached)."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reset_settings() -> None:
    """Reset settings (for testing)."""
    global _settings
    _settings = None
    get_settings.cache_clear()
