from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # ENV-only configuration
    model_config = SettingsConfigDict(env_prefix="")

    database_url: str
    api_host: str = "0.0.0.0"
    api_port: int = Field(default=8000, ge=1, le=65535)
    log_level: str = "INFO"

    # First entry is the primary endpoint, the rest are fallbacks tried in order.
    rpc_endpoints: list[str] = Field(default_factory=lambda: ["http://127.0.0.1:6000/rpc"], min_length=1)
    rpc_timeout_ms: int = Field(default=8000, ge=1)
    rpc_max_error_details: int = Field(default=10, ge=1)
    rpc_user_agent: str = "nodewatch/1.0"

    activity_gap_threshold_min: int = Field(default=5, ge=1)
    heatmap_window_days: int = Field(default=7, ge=1, le=90)
    heatmap_timezone: str = "UTC"
    active_staleness_sec: int = Field(default=120, ge=1)
    streak_recency_sec: int = Field(default=300, ge=1)
    retention_days: int = Field(default=90, ge=1)

    enrichment_batch_size: int = Field(default=50, ge=1)
    enrichment_max_attempts: int = Field(default=3, ge=1)


settings = Settings()
