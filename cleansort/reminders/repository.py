from datetime import datetime
from typing import Any, Callable, List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import select, update, delete, text

from .models import Reminder, Item, DeviceToken
from .schemas import ReminderRecord, ItemRecord, DeviceTokenRecord
from .store import ReminderStore, RecordNotFoundError, REMINDER_FIELDS, ITEM_FIELDS, _check_fields
from cleansort.utils.timezone import to_utc_aware, utcnow


class SqlAlchemyReminderStore(ReminderStore):
    """ReminderStore backed by the relational database. One short-lived session per call."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def ping(self) -> None:
        with self._session_factory() as db:
            db.execute(text("SELECT 1"))

    def query_reminders_due_before(self, threshold: datetime) -> List[ReminderRecord]:
        # Single range predicate; status and debounce are filtered by the scanner
        stmt = (
            select(Reminder)
            .where(Reminder.due_date <= to_utc_aware(threshold))
            .order_by(Reminder.due_date.asc())
        )
        with self._session_factory() as db:
            return [ReminderRecord.model_validate(r) for r in db.execute(stmt).scalars()]

    def query_reminders_by_item(self, item_id: str, limit: int) -> List[ReminderRecord]:
        stmt = (
            select(Reminder)
            .where(Reminder.item_id == item_id)
            .order_by(Reminder.created_at.asc(), Reminder.id.asc())
            .limit(limit)
        )
        with self._session_factory() as db:
            return [ReminderRecord.model_validate(r) for r in db.execute(stmt).scalars()]

    def get_reminder(self, reminder_id: str) -> Optional[ReminderRecord]:
        with self._session_factory() as db:
            r = db.get(Reminder, reminder_id)
            return ReminderRecord.model_validate(r) if r else None

    def update_reminder(self, reminder_id: str, **fields: Any) -> None:
        _check_fields(REMINDER_FIELDS, fields)
        with self._session_factory() as db:
            result = db.execute(
                update(Reminder)
                .where(Reminder.id == reminder_id)
                .values(**fields, updated_at=utcnow())
            )
            updated = result.rowcount
            db.commit()
        if updated == 0:
            raise RecordNotFoundError("reminder", reminder_id)

    def delete_reminder(self, reminder_id: str) -> None:
        with self._session_factory() as db:
            db.execute(delete(Reminder).where(Reminder.id == reminder_id))
            db.commit()

    def get_item(self, item_id: str) -> Optional[ItemRecord]:
        with self._session_factory() as db:
            i = db.get(Item, item_id)
            return ItemRecord.model_validate(i) if i else None

    def update_item(self, item_id: str, **fields: Any) -> None:
        _check_fields(ITEM_FIELDS, fields)
        with self._session_factory() as db:
            result = db.execute(
                update(Item)
                .where(Item.id == item_id)
                .values(**fields, updated_at=utcnow())
            )
            updated = result.rowcount
            db.commit()
        if updated == 0:
            raise RecordNotFoundError("item", item_id)

    def list_device_tokens(self, user_id: str) -> List[DeviceTokenRecord]:
        stmt = (
            select(DeviceToken)
            .where(DeviceToken.user_id == user_id)
            .order_by(DeviceToken.created_at.asc())
        )
        with self._session_factory() as db:
            return [DeviceTokenRecord.model_validate(t) for t in db.execute(stmt).scalars()]

    def delete_device_token(self, user_id: str, token_id: str) -> None:
        with self._session_factory() as db:
            db.execute(
                delete(DeviceToken)
                .where(DeviceToken.user_id == user_id)
                .where(DeviceToken.id == token_id)
            )
            db.commit()
