"""Test doubles and record factories shared across the suite."""
from datetime import datetime, timezone
from typing import Dict, List, Optional
import threading

from cleansort.reminders.gateway import PushGateway
from cleansort.reminders.schemas import PlatformOptions, PushNotification, SendResult


NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class FakePushGateway(PushGateway):
    """Records every multicast. Per-token error codes and per-reminder exceptions are scripted."""

    def __init__(self, available: bool = True):
        self.available = available
        self.sent: List[Dict] = []
        self.token_errors: Dict[str, str] = {}
        self.raise_for_reminders: Dict[str, Exception] = {}
        self.block: Optional[threading.Event] = None
        self.entered = threading.Event()

    def is_available(self) -> bool:
        return self.available

    def send_multicast(self, tokens, notification: PushNotification, data, options: PlatformOptions):
        self.entered.set()
        if self.block is not None:
            self.block.wait(timeout=5)
        reminder_id = data.get("reminderId")
        if reminder_id in self.raise_for_reminders:
            raise self.raise_for_reminders[reminder_id]
        self.sent.append({
            "tokens": list(tokens),
            "notification": notification,
            "data": dict(data),
            "options": options,
        })
        results = []
        for token in tokens:
            code = self.token_errors.get(token)
            if code:
                results.append(SendResult(success=False, error_code=code))
            else:
                results.append(SendResult(success=True, message_id=f"msg-{token}"))
        return results


def reminder(id, due, **fields):
    data = {"id": id, "item_id": f"item-{id}", "item_name": "Milk", "category": "recyclable", "user_id": "u1", "due_date": due}
    data.update(fields)
    return data
