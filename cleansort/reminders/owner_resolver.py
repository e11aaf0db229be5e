"""Recover the owning user of a reminder, or delete it when no owner can be found.

Lookup order: the reminder itself, then its item, then up to
``sibling_limit`` other reminders for the same item. Each reminder costs at
most one item fetch and one bounded sibling query.
"""
from typing import Optional
import logging

from .metrics import reminders_backfilled_total, reminders_orphaned_total
from .schemas import ReminderRecord, ResolvedReminder
from .store import ReminderStore

logger = logging.getLogger(__name__)


ORPHAN_MISSING_ITEM_ID = "missing_item_id"
ORPHAN_MISSING_ITEM = "missing_item"
ORPHAN_UNRESOLVABLE = "unresolvable_owner"


def _non_empty(user_id: Optional[str]) -> Optional[str]:
    if user_id and user_id.strip():
        return user_id.strip()
    return None


class OwnerResolver:
    def __init__(self, store: ReminderStore, sibling_limit: int = 10):
        self.store = store
        self.sibling_limit = sibling_limit

    def resolve(self, reminder: ReminderRecord) -> Optional[ResolvedReminder]:
        """Return the reminder tagged with its owner, or None if it was deleted as an orphan."""
        user_id = _non_empty(reminder.user_id)
        if user_id:
            return ResolvedReminder(reminder=reminder, user_id=user_id)

        if not reminder.item_id:
            self._discard(reminder, ORPHAN_MISSING_ITEM_ID)
            return None

        item = self.store.get_item(reminder.item_id)
        if item is None:
            self._discard(reminder, ORPHAN_MISSING_ITEM)
            return None

        user_id = _non_empty(item.user_id)
        if user_id:
            self._backfill(reminder, user_id, item_needs_update=False, source="item")
            return ResolvedReminder(reminder=reminder.model_copy(update={"user_id": user_id}), user_id=user_id, backfilled=True)

        user_id = self._owner_from_siblings(reminder)
        if user_id:
            self._backfill(reminder, user_id, item_needs_update=True, source="sibling")
            return ResolvedReminder(reminder=reminder.model_copy(update={"user_id": user_id}), user_id=user_id, backfilled=True)

        self._discard(reminder, ORPHAN_UNRESOLVABLE)
        return None

    def _owner_from_siblings(self, reminder: ReminderRecord) -> Optional[str]:
        # One extra row so the reminder itself does not use up the limit
        rows = self.store.query_reminders_by_item(reminder.item_id, limit=self.sibling_limit + 1)
        siblings = [r for r in rows if r.id != reminder.id][:self.sibling_limit]
        for sibling in siblings:
            user_id = _non_empty(sibling.user_id)
            if user_id:
                logger.info(f"[Owner] Reminder {reminder.id}: owner {user_id} taken from sibling {sibling.id}")
                return user_id
        return None

    def _backfill(self, reminder: ReminderRecord, user_id: str, item_needs_update: bool, source: str) -> None:
        if item_needs_update:
            self.store.update_item(reminder.item_id, user_id=user_id)
        self.store.update_reminder(reminder.id, user_id=user_id)
        reminders_backfilled_total.labels(source=source).inc()
        logger.info(f"[Owner] Backfilled user_id={user_id} on reminder {reminder.id} (item {reminder.item_id}, via {source})")

    def _discard(self, reminder: ReminderRecord, reason: str) -> None:
        self.store.delete_reminder(reminder.id)
        reminders_orphaned_total.labels(reason=reason).inc()
        logger.warning(
            f"[Owner] Deleted orphan reminder {reminder.id} (item_id={reminder.item_id!r}, "
            f"item_name={reminder.item_name!r}): {reason}"
        )
