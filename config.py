"""
config.py

Centralized configuration management using pydantic-settings.
All modules must import settings from this file.
Direct os.getenv() calls are prohibited elsewhere.
"""

from typing import Literal, Optional

from pydantic_settings import BaseSettings

from collector.constants import (
    HIGH_FREQUENCY_SAMPLE_INTERVAL_S,
    LOW_FREQUENCY_SAMPLE_INTERVAL_S,
)


class Settings(BaseSettings):
    """Application-wide settings loaded from .env file."""

    # Local durable store
    store_url: str = "sqlite+aiosqlite:///collector.db"

    # Remote collector
    collector_url: str = "http://127.0.0.1:8000/upload"
    upload_timeout_s: float = 10.0

    # Sampling / reporting cadence
    sampling_profile: Literal["high", "low"] = "high"
    sample_interval_s: Optional[float] = None  # overrides the profile when set
    report_interval_s: float = 1.0

    # Delivery policy: False keeps at-most-once semantics
    requeue_failed_batches: bool = False

    # Readings older than this are treated as absent (None = never stale)
    provider_max_age_s: Optional[float] = None

    # Logging
    log_level: str = "INFO"

    # Host control API
    control_host: str = "127.0.0.1"
    control_port: int = 8100

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "COLLECTOR_",
    }

    @property
    def effective_sample_interval(self) -> float:
        """Sampling period in seconds, honoring an explicit override."""
        if self.sample_interval_s is not None:
            return self.sample_interval_s
        if self.sampling_profile == "low":
            return LOW_FREQUENCY_SAMPLE_INTERVAL_S
        return HIGH_FREQUENCY_SAMPLE_INTERVAL_S


settings = Settings()
