"""
Configuration management for the AdProfit sync & aggregation service
"""
from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


# Plan limits by subscription tier. None means unlimited.
PLAN_LIMITS = {
    "starter": {
        "max_ad_platforms": 1,
        "sync_interval_hours": 24,
        "data_retention_days": 180,
        "campaign_pl": True,
        "team_access": False,
        "api_access": False,
    },
    "growth": {
        "max_ad_platforms": None,
        "sync_interval_hours": 4,
        "data_retention_days": 365,
        "campaign_pl": True,
        "team_access": False,
        "api_access": False,
    },
    "pro": {
        "max_ad_platforms": None,
        "sync_interval_hours": 4,
        "data_retention_days": None,
        "campaign_pl": True,
        "team_access": True,
        "api_access": True,
    },
}

DEFAULT_PLAN = "starter"


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "AdProfit Sync & Aggregation"
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Database
    database_url: str

    # Sync pipeline
    sync_interval_hours: int = 4
    sync_lock_stale_minutes: int = 10
    sync_incremental_days: int = 3
    sync_backfill_days: int = 30
    sync_tenant_concurrency: int = 4  # Tenants synced in parallel by sync_all
    default_metrics_days: int = 30

    # Feature flags
    enable_scheduler: bool = True
    enable_custom_costs: bool = True

    # Source adapters
    tiktok_api_base_url: str = "https://business-api.tiktok.com/open_api/v1.3"
    meta_api_base_url: str = "https://graph.facebook.com"
    meta_api_version: str = "v19.0"
    posthog_default_host: str = "https://app.posthog.com"
    posthog_purchase_event: str = "rc_initial_purchase"
    adapter_timeout_seconds: int = 30

    # Response cache TTL for /metrics (0 disables)
    metrics_cache_seconds: int = 60

    # Optional: explicit log directory
    log_dir: Optional[str] = "logs"

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
