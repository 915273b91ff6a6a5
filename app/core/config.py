import os
import logging
from pydantic import BaseModel, Field
from typing import List
from dotenv import load_dotenv

load_dotenv()


def _int_list(raw: str) -> List[int]:
    return [int(v.strip()) for v in raw.split(",") if v.strip()]


class SchedulerSettings(BaseModel):
    enabled: bool = Field(default=os.getenv("SCHEDULER_ENABLED", "true").lower() == "true")
    timezone: str = Field(default=os.getenv("SCHEDULER_TIMEZONE", "UTC"))
    # Daily cycle sweep, a few minutes past midnight to avoid midnight contention
    sweep_hour: int = Field(default=int(os.getenv("CYCLE_SWEEP_HOUR", "0")))
    sweep_minute: int = Field(default=int(os.getenv("CYCLE_SWEEP_MINUTE", "5")))
    misfire_grace_seconds: int = Field(default=int(os.getenv("SCHEDULER_MISFIRE_GRACE", "3600")))


class Config(BaseModel):
    app_name: str = "Review Cycle Service"
    environment: str = os.getenv("APP_ENV", "development")
    api_prefix: str = "/api"
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./database.db")

    version: str = "1.0.0"
    request_id_header: str = "X-Request-ID"
    actor_header: str = "X-Actor-Id"

    # Review cycle defaults
    default_grace_period_days: int = int(os.getenv("DEFAULT_GRACE_PERIOD_DAYS", "3"))
    default_reminder_schedule: List[int] = Field(
        default_factory=lambda: _int_list(os.getenv("DEFAULT_REMINDER_SCHEDULE", "7,3,1"))
    )
    max_page_size: int = 50

    scheduler: SchedulerSettings = SchedulerSettings()


settings = Config()

_logger = logging.getLogger(__name__)
if not 0 <= settings.default_grace_period_days <= 7:
    raise RuntimeError(
        f"FATAL: DEFAULT_GRACE_PERIOD_DAYS must be between 0 and 7, got {settings.default_grace_period_days}."
    )
if settings.environment == "development" and settings.database_url.startswith("sqlite"):
    _logger.info("Using SQLite database at %s", settings.database_url)
