from datetime import datetime, timedelta
from typing import List
import logging

from .metrics import reminders_scanned_total
from .schemas import ACTIONABLE_STATUSES, ReminderRecord
from .store import ReminderStore

logger = logging.getLogger(__name__)


def is_debounced(reminder: ReminderRecord, now: datetime, debounce: timedelta) -> bool:
    """True while the last send is still inside the debounce window."""
    last = reminder.last_notification_sent
    return last is not None and now - last < debounce


def scan_due_reminders(
    store: ReminderStore,
    now: datetime,
    lookahead: timedelta,
    debounce: timedelta,
) -> List[ReminderRecord]:
    """Return reminders due by ``now + lookahead`` that are actionable and not recently notified.

    The store is queried on ``due_date`` alone so that no composite index is
    required; status and debounce filtering happen here.
    """
    threshold = now + lookahead
    candidates = store.query_reminders_due_before(threshold)
    reminders_scanned_total.inc(len(candidates))

    eligible = []
    inactive = 0
    debounced = 0
    for reminder in candidates:
        if reminder.status not in ACTIONABLE_STATUSES:
            inactive += 1
            continue
        if is_debounced(reminder, now, debounce):
            debounced += 1
            continue
        eligible.append(reminder)

    logger.info(
        f"[Scanner] due<= {threshold.isoformat()} | found={len(candidates)} "
        f"eligible={len(eligible)} inactive={inactive} debounced={debounced}"
    )
    return eligible
