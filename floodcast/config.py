"""
FloodCast Configuration.

Pydantic Settings v2 — loads from .env, environment variables.
"""

from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # ── Application ──────────────────────────────────────────────────────
    app_name: str = "FloodCast"
    app_version: str = "1.0.0"
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")

    # ── API ───────────────────────────────────────────────────────────────
    api_host: str = Field(default="0.0.0.0", alias="API_HOST")
    api_port: int = Field(default=8010, alias="API_PORT")
    allowed_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:19006"],
        alias="CORS_ORIGINS",
    )

    # ── Alert Trigger ─────────────────────────────────────────────────────
    alert_trigger_threshold: float = Field(default=0.6, alias="ALERT_TRIGGER_THRESHOLD")
    alert_threshold_min: float = Field(default=0.5, alias="ALERT_THRESHOLD_MIN")
    alert_threshold_max: float = Field(default=0.95, alias="ALERT_THRESHOLD_MAX")
    alerts_enabled: bool = Field(default=True, alias="ALERTS_ENABLED")

    # ── Monitoring ────────────────────────────────────────────────────────
    monitor_interval_seconds: float = Field(default=300.0, alias="MONITOR_INTERVAL_SECONDS")
    monitored_locations: List[dict] = Field(default_factory=list, alias="MONITORED_LOCATIONS")

    # ── Severity bands (hours of countdown) ───────────────────────────────
    severity_immediate_hours: float = Field(default=2.0, alias="SEVERITY_IMMEDIATE_HOURS")
    severity_urgent_hours: float = Field(default=6.0, alias="SEVERITY_URGENT_HOURS")
    severity_warning_hours: float = Field(default=12.0, alias="SEVERITY_WARNING_HOURS")

    # ── Risk bands (probability) ──────────────────────────────────────────
    risk_very_high_threshold: float = Field(default=0.8, alias="RISK_VERY_HIGH_THRESHOLD")
    risk_high_threshold: float = Field(default=0.6, alias="RISK_HIGH_THRESHOLD")
    risk_medium_threshold: float = Field(default=0.3, alias="RISK_MEDIUM_THRESHOLD")

    # ── Countdown derivation ──────────────────────────────────────────────
    preparation_window_fraction: float = Field(
        default=0.25, alias="PREPARATION_WINDOW_FRACTION",
        description="Share of the predicted timeframe used as time to prepare",
    )
    default_timeframe_hours: float = Field(default=24.0, alias="DEFAULT_TIMEFRAME_HOURS")
    imminent_rainfall_mm_per_hour: float = Field(
        default=50.0, alias="IMMINENT_RAINFALL_MM_PER_HOUR",
    )
    immediate_window_hours: float = Field(default=2.0, alias="IMMEDIATE_WINDOW_HOURS")

    # ── Notification tiers ────────────────────────────────────────────────
    urgent_reminder_minutes: float = Field(default=30.0, alias="URGENT_REMINDER_MINUTES")
    warning_reminder_lead_hours: float = Field(default=2.0, alias="WARNING_REMINDER_LEAD_HOURS")
    advisory_reminder_lead_hours: float = Field(default=6.0, alias="ADVISORY_REMINDER_LEAD_HOURS")
    notification_cooldown_minutes: float = Field(default=30.0, alias="NOTIFICATION_COOLDOWN_MINUTES")
    max_notifications_per_day: int = Field(default=48, alias="MAX_NOTIFICATIONS_PER_DAY")

    # ── Store ─────────────────────────────────────────────────────────────
    alert_history_limit: int = Field(default=200, alias="ALERT_HISTORY_LIMIT")

    # ── External Services ─────────────────────────────────────────────────
    prediction_api_url: str = Field(default="http://localhost:8000", alias="PREDICTION_API_URL")
    prediction_api_key: str = Field(default="", alias="PREDICTION_API_KEY")
    prediction_timeout_seconds: float = Field(default=10.0, alias="PREDICTION_TIMEOUT_SECONDS")
    alert_webhook_url: str = Field(default="", alias="ALERT_WEBHOOK_URL")
    webhook_timeout_seconds: float = Field(default=10.0, alias="WEBHOOK_TIMEOUT_SECONDS")

    # ── Operational ────────────────────────────────────────────────────────
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="console", alias="LOG_FORMAT")


settings = Settings()
