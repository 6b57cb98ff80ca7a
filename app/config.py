"""Delivery pipeline settings read from the environment."""

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class DeliverySettings(BaseModel):
    """Knobs shared by the dispatch engine, scheduler, reclaimer and triggers."""

    max_retries: int = Field(default=3, ge=1)
    retry_delay_seconds: int = Field(default=300, ge=0)
    stuck_threshold_seconds: int = Field(default=300, gt=0)
    scheduler_interval_seconds: int = Field(default=60, gt=0)
    reclaimer_interval_seconds: int = Field(default=300, gt=0)
    time_budget_seconds: Optional[float] = Field(default=2.5)
    batch_size: int = Field(default=100, ge=1)
    gateway_timeout_seconds: float = Field(default=10.0, gt=0)
    timer_enabled: bool = True
    timer_run_on_start: bool = True
    processing_api_token: Optional[str] = None
    cron_secret: Optional[str] = None

    @classmethod
    def from_env(cls) -> "DeliverySettings":
        """Build settings from environment variables, falling back to defaults."""
        budget = os.getenv("PROCESSING_TIME_BUDGET_SECONDS", "2.5")
        return cls(
            max_retries=int(os.getenv("MAX_RETRIES", "3")),
            retry_delay_seconds=int(os.getenv("RETRY_DELAY_SECONDS", "300")),
            stuck_threshold_seconds=int(os.getenv("STUCK_THRESHOLD_SECONDS", "300")),
            scheduler_interval_seconds=int(
                os.getenv("SCHEDULER_INTERVAL_SECONDS", "60")
            ),
            reclaimer_interval_seconds=int(
                os.getenv("RECLAIMER_INTERVAL_SECONDS", "300")
            ),
            # An empty value disables the budget
            time_budget_seconds=float(budget) if budget else None,
            batch_size=int(os.getenv("SCHEDULER_BATCH_SIZE", "100")),
            gateway_timeout_seconds=float(os.getenv("GATEWAY_TIMEOUT_SECONDS", "10")),
            timer_enabled=_env_bool("DELIVERY_TIMER_ENABLED", "true"),
            timer_run_on_start=_env_bool("DELIVERY_TIMER_RUN_ON_START", "true"),
            processing_api_token=os.getenv("PROCESSING_API_TOKEN") or None,
            cron_secret=os.getenv("CRON_SECRET") or None,
        )


_settings: Optional[DeliverySettings] = None


def get_settings() -> DeliverySettings:
    """Return the process-wide settings, loading them on first use."""
    global _settings
    if _settings is None:
        _settings = DeliverySettings.from_env()
    return _settings
