"""
Storage interface used by the reminder dispatcher, plus an in-memory
implementation for tests and local development.

The dispatcher never talks to SQLAlchemy directly; it only sees
``ReminderStore``. ``SqlAlchemyReminderStore`` in ``repository.py`` is the
persistent implementation.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional
import threading
import uuid

from .schemas import DeviceTokenRecord, ItemRecord, ReminderRecord


class StoreError(Exception):
    """Raised when the backing store cannot serve a request."""


class RecordNotFoundError(StoreError):
    def __init__(self, kind: str, record_id: str):
        super().__init__(f"{kind} {record_id} not found")
        self.kind = kind
        self.record_id = record_id


REMINDER_FIELDS = frozenset(ReminderRecord.model_fields) - {"id"}
ITEM_FIELDS = frozenset(ItemRecord.model_fields) - {"id"}


def _check_fields(allowed: frozenset, fields: Dict[str, Any]) -> None:
    unknown = set(fields) - allowed
    if unknown:
        raise ValueError(f"Unknown fields: {sorted(unknown)}")


class ReminderStore(ABC):
    """Document-style access to reminders, items and per-user device tokens."""

    @abstractmethod
    def ping(self) -> None:
        """Raise if the store is unreachable."""

    @abstractmethod
    def query_reminders_due_before(self, threshold: datetime) -> List[ReminderRecord]:
        """Every reminder with ``due_date <= threshold``; no other predicate."""

    @abstractmethod
    def query_reminders_by_item(self, item_id: str, limit: int) -> List[ReminderRecord]:
        """At most ``limit`` reminders for ``item_id``, oldest first."""

    @abstractmethod
    def get_reminder(self, reminder_id: str) -> Optional[ReminderRecord]:
        ...

    @abstractmethod
    def update_reminder(self, reminder_id: str, **fields: Any) -> None:
        ...

    @abstractmethod
    def delete_reminder(self, reminder_id: str) -> None:
        ...

    @abstractmethod
    def get_item(self, item_id: str) -> Optional[ItemRecord]:
        ...

    @abstractmethod
    def update_item(self, item_id: str, **fields: Any) -> None:
        ...

    @abstractmethod
    def list_device_tokens(self, user_id: str) -> List[DeviceTokenRecord]:
        ...

    @abstractmethod
    def delete_device_token(self, user_id: str, token_id: str) -> None:
        ...


class InMemoryReminderStore(ReminderStore):
    """Dict-backed store. Safe to share between the event loop and a worker thread."""

    def __init__(self):
        self._lock = threading.RLock()
        self._reminders: Dict[str, ReminderRecord] = {}
        self._items: Dict[str, ItemRecord] = {}
        self._tokens: Dict[str, Dict[str, DeviceTokenRecord]] = {}

    # --- seeding helpers ---
    def add_reminder(self, reminder: ReminderRecord | dict) -> ReminderRecord:
        record = ReminderRecord.model_validate(reminder)
        with self._lock:
            self._reminders[record.id] = record
        return record

    def add_item(self, item: ItemRecord | dict) -> ItemRecord:
        record = ItemRecord.model_validate(item)
        with self._lock:
            self._items[record.id] = record
        return record

    def add_device_token(self, user_id: str, token: str, **extra: Any) -> DeviceTokenRecord:
        record = DeviceTokenRecord(id=extra.pop("id", None) or uuid.uuid4().hex, user_id=user_id, token=token, **extra)
        with self._lock:
            self._tokens.setdefault(user_id, {})[record.id] = record
        return record

    # --- ReminderStore ---
    def ping(self) -> None:
        return None

    def query_reminders_due_before(self, threshold: datetime) -> List[ReminderRecord]:
        with self._lock:
            due = [r for r in self._reminders.values() if r.due_date <= threshold]
        return sorted(due, key=lambda r: r.due_date)

    def query_reminders_by_item(self, item_id: str, limit: int) -> List[ReminderRecord]:
        with self._lock:
            matches = [r for r in self._reminders.values() if r.item_id == item_id]
        matches.sort(key=lambda r: (r.created_at is None, r.created_at or r.due_date, r.id))
        return matches[:limit]

    def get_reminder(self, reminder_id: str) -> Optional[ReminderRecord]:
        with self._lock:
            return self._reminders.get(reminder_id)

    def update_reminder(self, reminder_id: str, **fields: Any) -> None:
        _check_fields(REMINDER_FIELDS, fields)
        with self._lock:
            current = self._reminders.get(reminder_id)
            if current is None:
                raise RecordNotFoundError("reminder", reminder_id)
            self._reminders[reminder_id] = ReminderRecord.model_validate({**current.model_dump(), **fields})

    def delete_reminder(self, reminder_id: str) -> None:
        with self._lock:
            self._reminders.pop(reminder_id, None)

    def get_item(self, item_id: str) -> Optional[ItemRecord]:
        with self._lock:
            return self._items.get(item_id)

    def update_item(self, item_id: str, **fields: Any) -> None:
        _check_fields(ITEM_FIELDS, fields)
        with self._lock:
            current = self._items.get(item_id)
            if current is None:
                raise RecordNotFoundError("item", item_id)
            self._items[item_id] = ItemRecord.model_validate({**current.model_dump(), **fields})

    def list_device_tokens(self, user_id: str) -> List[DeviceTokenRecord]:
        with self._lock:
            return list(self._tokens.get(user_id, {}).values())

    def delete_device_token(self, user_id: str, token_id: str) -> None:
        with self._lock:
            self._tokens.get(user_id, {}).pop(token_id, None)
