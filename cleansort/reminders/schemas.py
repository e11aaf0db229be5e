"""
Schemas exchanged between the reminder store, the dispatcher and the API
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from cleansort.utils.timezone import parse_timestamp


ACTIONABLE_STATUSES = frozenset({"upcoming", "overdue"})


class _Record(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class ReminderRecord(_Record):
    """Schema for reading reminders out of the store"""
    id: str
    item_id: Optional[str] = None
    item_name: str = ""
    category: str = ""
    user_id: Optional[str] = None
    due_date: datetime
    status: str = "upcoming"
    created_at: Optional[datetime] = None
    last_notification_sent: Optional[datetime] = None

    @field_validator("due_date", "created_at", "last_notification_sent", mode="before")
    @classmethod
    def normalize_timestamps(cls, v):
        # Timestamps come back naive from SQLite and as ISO strings from JSON fixtures
        return parse_timestamp(v)


class ItemRecord(_Record):
    """Schema for reading items out of the store"""
    id: str
    user_id: Optional[str] = None
    name: str = ""
    category: str = ""
    quantity: Optional[float] = None
    unit: Optional[str] = None
    interval: Optional[int] = None
    created_at: Optional[datetime] = None

    @field_validator("created_at", mode="before")
    @classmethod
    def normalize_timestamps(cls, v):
        return parse_timestamp(v)


class DeviceTokenRecord(_Record):
    """Schema for reading device tokens"""
    id: str
    user_id: str
    token: str
    platform: Optional[str] = None
    device_info: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def normalize_timestamps(cls, v):
        return parse_timestamp(v)


class ResolvedReminder(BaseModel):
    """A reminder whose owner is known"""
    reminder: ReminderRecord
    user_id: str
    backfilled: bool = False


class SendResult(BaseModel):
    """Per-token result of a multicast send"""
    success: bool
    error_code: Optional[str] = None
    message_id: Optional[str] = None


class PushNotification(BaseModel):
    """Visible part of a push message"""
    title: str
    body: str


class PlatformOptions(BaseModel):
    """Platform envelope fields (APNs sound/badge, Android priority)"""
    sound: str = "default"
    badge: Optional[int] = None
    priority: str = "high"


class DispatchOutcome(BaseModel):
    """What happened for one user within one cycle"""
    user_id: str
    reminder_ids: List[str] = Field(default_factory=list)
    failed_reminder_ids: List[str] = Field(default_factory=list)
    tokens: List[str] = Field(default_factory=list)
    results: List[SendResult] = Field(default_factory=list)
    success_count: int = 0
    failure_count: int = 0
    pruned_tokens: List[str] = Field(default_factory=list)
    skipped_reason: Optional[str] = None


class CycleSummary(BaseModel):
    """Schema returned for one scan-and-dispatch cycle"""
    cycle_time: datetime
    skipped: bool = False
    eligible: int = 0
    resolved: int = 0
    orphaned: int = 0
    backfilled: int = 0
    notifications_attempted: int = 0
    reminders_failed: int = 0
    token_successes: int = 0
    token_failures: int = 0
    tokens_pruned: int = 0
    outcomes: List[DispatchOutcome] = Field(default_factory=list)


class DispatchStatus(BaseModel):
    """Schema for the dispatcher status endpoint"""
    enabled: bool
    scheduler_running: bool
    cycle_in_progress: bool
    last_cycle: Optional[CycleSummary] = None
