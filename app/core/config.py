# app/core/config.py
import os
from pydantic_settings import BaseSettings
from pydantic import model_validator
from pydantic_settings import SettingsConfigDict
from typing import Tuple
from functools import lru_cache

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Application Settings
    APP_NAME: str = "Appointment Lifecycle API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    DOCS_ENABLED: bool = True

    # Database Settings
    DATABASE_URL: str = os.environ.get("DATABASE_URL", "sqlite:///./app/lifecycle.db")
    DB_TIMEOUT_SECONDS: float = 10.0

    # Scheduler Settings
    SCHEDULER_ENABLED: bool = True
    SCHEDULER_TIMEZONE: str = "Europe/Warsaw"
    SWEEP_INTERVAL_MINUTES: int = 5
    SWEEP_MAX_CONCURRENCY: int = 10
    AVAILABILITY_CLEANUP_HOUR: int = 0

    # Sweep windows, minutes relative to the sweep instant (closed intervals)
    ONE_HOUR_REMINDER_WINDOW: Tuple[int, int] = (55, 65)
    FIVE_MINUTE_REMINDER_WINDOW: Tuple[int, int] = (5, 10)
    COMPLETION_WINDOW: Tuple[int, int] = (-15, -5)
    AUTO_CANCEL_WINDOW: Tuple[int, int] = (55, 65)
    # Overdue Pending records are still cancelled up to this long after their start
    AUTO_CANCEL_CATCH_UP_MINUTES: int = 15

    # State machine timing
    COMPLETION_DELAY_MINUTES: int = 5
    CONFIRMATION_DEADLINE_MINUTES: int = 60

    # Booking / availability
    SLOT_GRANULARITY_MINUTES: int = 15
    BOOKING_LEAD_TIME_MINUTES: int = 30

    # Firebase Settings
    FIREBASE_PROJECT_ID: str = os.environ.get("FIREBASE_PROJECT_ID", "")
    FIREBASE_PRIVATE_KEY: str = os.environ.get("FIREBASE_PRIVATE_KEY", "").replace('\\n', '\n')
    FIREBASE_CLIENT_EMAIL: str = os.environ.get("FIREBASE_CLIENT_EMAIL", "")
    PUSH_TIMEOUT_SECONDS: float = 10.0

    # Logging Settings
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    @model_validator(mode="after")
    def _check_sweep_windows(self) -> "Settings":
        # A record must be observed by at least one tick while it sits in a
        # closed window, so no window may be narrower than the sweep cadence.
        if self.SWEEP_INTERVAL_MINUTES <= 0:
            raise ValueError("SWEEP_INTERVAL_MINUTES must be positive")
        if self.SLOT_GRANULARITY_MINUTES <= 0:
            raise ValueError("SLOT_GRANULARITY_MINUTES must be positive")
        if self.AUTO_CANCEL_CATCH_UP_MINUTES < 0:
            raise ValueError("AUTO_CANCEL_CATCH_UP_MINUTES must not be negative")
        if self.DB_TIMEOUT_SECONDS <= 0:
            raise ValueError("DB_TIMEOUT_SECONDS must be positive")
        for name in ("ONE_HOUR_REMINDER_WINDOW", "FIVE_MINUTE_REMINDER_WINDOW", "COMPLETION_WINDOW", "AUTO_CANCEL_WINDOW"):
            lower, upper = getattr(self, name)
            if lower > upper:
                raise ValueError(f"{name} lower bound must not exceed upper bound")
            if name == "AUTO_CANCEL_WINDOW":
                # Records past the confirmation deadline are not due yet
                upper = min(upper, self.CONFIRMATION_DEADLINE_MINUTES)
            if self.SWEEP_INTERVAL_MINUTES > upper - lower:
                raise ValueError(
                    f"{name} ({upper - lower} min wide where due) is narrower than the "
                    f"sweep interval ({self.SWEEP_INTERVAL_MINUTES} min)"
                )
        return self

@lru_cache()
def get_settings() -> Settings:
    return Settings()

settings: Settings = get_settings()
