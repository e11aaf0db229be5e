from datetime import timedelta
from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ReminderSettings(BaseSettings):
    ENABLED: bool = True

    # Scanning
    LOOKAHEAD_SECONDS: int = 3600
    DEBOUNCE_SECONDS: int = 300
    SIBLING_LOOKUP_LIMIT: int = 10

    # Scheduling
    SCAN_INTERVAL_SECONDS: int = 300
    STARTUP_DELAY_SECONDS: float = 10.0

    # Notification content
    NOTIFICATION_TITLE: str = "Disposal Reminder"

    # FCM
    FCM_PROJECT_ID: Optional[str] = None
    FCM_CREDENTIALS_JSON: Optional[str] = None  # path or inline JSON via env

    # Metrics
    METRICS_ENABLED: bool = False

    @model_validator(mode="after")
    def validate_timing(self) -> "ReminderSettings":
        for name in ("LOOKAHEAD_SECONDS", "DEBOUNCE_SECONDS", "SCAN_INTERVAL_SECONDS", "SIBLING_LOOKUP_LIMIT"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        if self.STARTUP_DELAY_SECONDS < 0:
            raise ValueError("STARTUP_DELAY_SECONDS must not be negative")
        # The debounce window must cover at least one scheduler tick
        if self.DEBOUNCE_SECONDS < self.SCAN_INTERVAL_SECONDS:
            raise ValueError(
                "DEBOUNCE_SECONDS must be >= SCAN_INTERVAL_SECONDS "
                f"(got {self.DEBOUNCE_SECONDS} < {self.SCAN_INTERVAL_SECONDS})"
            )
        return self

    @property
    def lookahead(self) -> timedelta:
        return timedelta(seconds=self.LOOKAHEAD_SECONDS)

    @property
    def debounce(self) -> timedelta:
        return timedelta(seconds=self.DEBOUNCE_SECONDS)

    model_config = SettingsConfigDict(env_prefix="REMINDER_", env_file=".env", extra="ignore")


settings = ReminderSettings()
