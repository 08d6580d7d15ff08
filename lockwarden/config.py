"""Lockwarden configuration system using Pydantic Settings."""

from __future__ import annotations

from typing import Optional

from pydantic import ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .utils.logging import get_logger

logger = get_logger("config")

# Tunables that must be strictly positive; bad values fall back to their default
_POSITIVE_FIELDS = (
    "max_attempts",
    "attempt_window_seconds",
    "lockout_duration_seconds",
    "source_max_attempts",
    "source_attempt_window_seconds",
    "source_lockout_duration_seconds",
    "permanent_lockout_threshold",
    "progressive_max_multiplier",
    "volume_threshold",
    "volume_window_seconds",
    "burst_threshold",
    "burst_window_seconds",
    "coordinated_sources_threshold",
    "coordinated_window_seconds",
    "store_timeout_seconds",
    "event_append_retries",
    "dashboard_cache_ttl_seconds",
    "dashboard_recent_limit",
    "dashboard_top_sources_limit",
    "dashboard_window_days",
    "dashboard_timeline_days",
    "health_high_warning_threshold",
    "retention_events_days",
    "retention_interval_seconds",
    "alert_webhook_timeout_seconds",
    "rate_limit_requests",
    "rate_limit_window_seconds",
)


class LockwardenConfig(BaseSettings):
    """Main configuration class. Loads from .env file and environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    app_name: str = "LOCKWARDEN"
    debug: bool = False
    host: str = "127.0.0.1"
    port: int = 8000
    admin_api_key: Optional[str] = None

    # Logging
    log_dir: Optional[str] = "logs"
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5

    # Database (event store)
    database_url: str = "sqlite+aiosqlite:///./lockwarden.db"
    db_wal_mode: bool = True
    db_busy_timeout: int = 5000

    # Counter / lockout store backend
    store_backend: str = "memory"  # memory / redis
    redis_url: str = "redis://localhost:6379/0"
    store_timeout_seconds: float = 2.0
    fail_closed: bool = True

    # Identity axis
    max_attempts: int = 5
    attempt_window_seconds: int = 900
    lockout_duration_seconds: int = 1800

    # Source axis
    source_max_attempts: int = 20
    source_attempt_window_seconds: int = 900
    source_lockout_enabled: bool = True
    source_lockout_duration_seconds: int = 3600

    # Escalation
    permanent_lockout_threshold: int = 10
    progressive_lockout: bool = False
    progressive_max_multiplier: int = 32

    # Threat detector
    volume_threshold: int = 50
    volume_window_seconds: int = 3600
    volume_thresholds: dict[str, int] = {}
    burst_threshold: int = 10
    burst_window_seconds: int = 600
    coordinated_sources_threshold: int = 5
    coordinated_window_seconds: int = 300

    # Event recording
    event_append_retries: int = 3
    event_append_backoff_seconds: float = 0.05

    # Dashboard
    dashboard_cache_ttl_seconds: int = 300
    dashboard_recent_limit: int = 50
    dashboard_top_sources_limit: int = 10
    dashboard_window_days: int = 7
    dashboard_timeline_days: int = 30
    health_high_warning_threshold: int = 6

    # Retention
    retention_events_days: int = 90
    retention_interval_seconds: int = 86400

    # Alerting
    alert_webhook_urls: list[str] = []
    alert_webhook_timeout_seconds: float = 10.0

    # Request rate limiter (Gatekeeper)
    rate_limit_enabled: bool = True
    rate_limit_requests: int = 100
    rate_limit_window_seconds: int = 60
    # Honour X-Forwarded-For only when a reverse proxy sets it
    trust_forwarded_for: bool = False

    @field_validator(*_POSITIVE_FIELDS, mode="before")
    @classmethod
    def fallback_to_default(cls, v, info: ValidationInfo):
        default = cls.model_fields[info.field_name].default
        if v is None or v == "":
            return default
        try:
            number = float(v)
        except (TypeError, ValueError):
            logger.warning("config_value_invalid", field=info.field_name, value=v, default=default)
            return default
        if number <= 0:
            logger.warning("config_value_invalid", field=info.field_name, value=v, default=default)
            return default
        return v

    @field_validator("volume_thresholds")
    @classmethod
    def drop_invalid_volume_thresholds(cls, v: dict[str, int]) -> dict[str, int]:
        valid = {k: n for k, n in v.items() if n > 0}
        if len(valid) != len(v):
            logger.warning("config_value_invalid", field="volume_thresholds", dropped=sorted(set(v) - set(valid)))
        return valid

    @field_validator("store_backend")
    @classmethod
    def validate_store_backend(cls, v: str) -> str:
        allowed = {"memory", "redis"}
        if v not in allowed:
            raise ValueError(f"store_backend must be one of {allowed}")
        return v

    def volume_threshold_for(self, event_type: str) -> int:
        return self.volume_thresholds.get(event_type, self.volume_threshold)


def get_config() -> LockwardenConfig:
    """Factory function to create config instance."""
    return LockwardenConfig()
