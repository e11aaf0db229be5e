from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, List, Optional
import logging
import threading

from .config import ReminderSettings, settings as reminder_settings
from .gateway import PushGateway
from .metrics import (
    push_token_results_total,
    reminders_dispatch_failed_total,
    reminders_dispatch_success_total,
    reminders_eligible_total,
    scheduler_cycles_skipped_total,
    scheduler_cycles_total,
)
from .owner_resolver import OwnerResolver
from .pruner import prune_invalid_tokens
from .scanner import scan_due_reminders
from .schemas import (
    CycleSummary,
    DeviceTokenRecord,
    DispatchOutcome,
    PlatformOptions,
    PushNotification,
    ReminderRecord,
    ResolvedReminder,
)
from .store import ReminderStore
from cleansort.utils.timezone import isoformat_utc, utcnow

logger = logging.getLogger(__name__)


def build_notification(reminder: ReminderRecord, title: str) -> PushNotification:
    return PushNotification(
        title=title,
        body=f"Time to dispose of {reminder.item_name or 'your item'}",
    )


def build_data_payload(reminder: ReminderRecord) -> Dict[str, str]:
    # FCM data values must be strings
    return {
        "reminderId": reminder.id,
        "itemId": reminder.item_id or "",
        "itemName": reminder.item_name or "",
        "category": reminder.category or "",
        "dueDate": isoformat_utc(reminder.due_date),
    }


class ReminderDispatcher:
    """Runs scan -> owner resolution -> per-user multicast -> token pruning.

    ``run_cycle`` is the single entry point for both the scheduler and the
    manual trigger. A non-blocking lock makes overlapping calls return a
    skipped summary instead of running concurrently.
    """

    def __init__(
        self,
        store: ReminderStore,
        gateway: PushGateway,
        lookahead: timedelta = reminder_settings.lookahead,
        debounce: timedelta = reminder_settings.debounce,
        sibling_limit: int = reminder_settings.SIBLING_LOOKUP_LIMIT,
        notification_title: str = reminder_settings.NOTIFICATION_TITLE,
    ):
        self.store = store
        self.gateway = gateway
        self.lookahead = lookahead
        self.debounce = debounce
        self.notification_title = notification_title
        self.resolver = OwnerResolver(store, sibling_limit=sibling_limit)
        self._cycle_lock = threading.Lock()
        self.last_summary: Optional[CycleSummary] = None

    @classmethod
    def from_settings(cls, store: ReminderStore, gateway: PushGateway, cfg: ReminderSettings) -> "ReminderDispatcher":
        return cls(
            store,
            gateway,
            lookahead=cfg.lookahead,
            debounce=cfg.debounce,
            sibling_limit=cfg.SIBLING_LOOKUP_LIMIT,
            notification_title=cfg.NOTIFICATION_TITLE,
        )

    @property
    def cycle_in_progress(self) -> bool:
        return self._cycle_lock.locked()

    def run_cycle(self, now: Optional[datetime] = None, trigger: str = "manual") -> CycleSummary:
        now = now or utcnow()
        if not self._cycle_lock.acquire(blocking=False):
            scheduler_cycles_skipped_total.labels(trigger=trigger).inc()
            logger.warning(f"[Dispatch] Cycle ({trigger}) skipped: previous cycle still running")
            return CycleSummary(cycle_time=now, skipped=True)
        try:
            scheduler_cycles_total.labels(trigger=trigger).inc()
            summary = self._run_cycle(now)
            self.last_summary = summary
            return summary
        finally:
            self._cycle_lock.release()

    def _run_cycle(self, now: datetime) -> CycleSummary:
        logger.info(f"[Dispatch] Cycle start at {now.isoformat()}")
        summary = CycleSummary(cycle_time=now)

        eligible = scan_due_reminders(self.store, now, self.lookahead, self.debounce)
        summary.eligible = len(eligible)
        reminders_eligible_total.inc(len(eligible))

        resolved: List[ResolvedReminder] = []
        for reminder in eligible:
            try:
                result = self.resolver.resolve(reminder)
            except Exception as e:
                logger.error(f"[Dispatch] Owner resolution failed for reminder {reminder.id}: {e!r}")
                summary.reminders_failed += 1
                continue
            if result is None:
                summary.orphaned += 1
                continue
            if result.backfilled:
                summary.backfilled += 1
            resolved.append(result)
        summary.resolved = len(resolved)

        for outcome in self.dispatch(resolved, now):
            summary.outcomes.append(outcome)
            summary.notifications_attempted += len(outcome.reminder_ids)
            summary.reminders_failed += len(outcome.failed_reminder_ids)
            summary.token_successes += outcome.success_count
            summary.token_failures += outcome.failure_count
            summary.tokens_pruned += len(outcome.pruned_tokens)

        logger.info(
            f"[Dispatch] Cycle done | eligible={summary.eligible} resolved={summary.resolved} "
            f"orphaned={summary.orphaned} attempted={summary.notifications_attempted} "
            f"failed={summary.reminders_failed} tokens_ok={summary.token_successes} "
            f"tokens_failed={summary.token_failures} pruned={summary.tokens_pruned}"
        )
        return summary

    def dispatch(self, resolved: List[ResolvedReminder], now: datetime) -> List[DispatchOutcome]:
        """Group by user and send one multicast per reminder to all of that user's tokens."""
        groups: Dict[str, List[ReminderRecord]] = defaultdict(list)
        for r in resolved:
            groups[r.user_id].append(r.reminder)

        outcomes = []
        for user_id, reminders in groups.items():
            try:
                outcome = self._dispatch_user(user_id, reminders, now)
            except Exception as e:
                # Token lookup failed; nothing was sent for this user
                logger.error(f"[Dispatch] user={user_id}: could not load device tokens: {e!r}")
                reminders_dispatch_failed_total.inc(len(reminders))
                outcome = DispatchOutcome(
                    user_id=user_id,
                    failed_reminder_ids=[r.id for r in reminders],
                    skipped_reason="token_lookup_failed",
                )
            outcomes.append(outcome)
        return outcomes

    def _dispatch_user(self, user_id: str, reminders: List[ReminderRecord], now: datetime) -> DispatchOutcome:
        outcome = DispatchOutcome(user_id=user_id)
        tokens: List[DeviceTokenRecord] = self.store.list_device_tokens(user_id)
        if not tokens:
            logger.info(f"[Dispatch] user={user_id}: no device tokens, skipping {len(reminders)} reminder(s)")
            outcome.skipped_reason = "no_device_tokens"
            return outcome

        outcome.tokens = [t.token for t in tokens]
        options = PlatformOptions(badge=len(reminders))

        for reminder in reminders:
            if not tokens:
                logger.info(f"[Dispatch] user={user_id}: every token pruned, reminder {reminder.id} not sent")
                break
            try:
                results = self.gateway.send_multicast(
                    [t.token for t in tokens],
                    build_notification(reminder, self.notification_title),
                    build_data_payload(reminder),
                    options,
                )
            except Exception as e:
                logger.exception(f"[Dispatch] user={user_id}: reminder {reminder.id} failed: {e!r}")
                outcome.failed_reminder_ids.append(reminder.id)
                reminders_dispatch_failed_total.inc()
                continue

            # The send already happened; a failed stamp must not discard its results
            try:
                self.store.update_reminder(reminder.id, last_notification_sent=now)
            except Exception as e:
                logger.error(f"[Dispatch] user={user_id}: could not stamp reminder {reminder.id} as sent: {e!r}")

            outcome.reminder_ids.append(reminder.id)
            outcome.results.extend(results)
            ok = sum(1 for r in results if r.success)
            outcome.success_count += ok
            outcome.failure_count += len(results) - ok
            push_token_results_total.labels(outcome="success").inc(ok)
            push_token_results_total.labels(outcome="failure").inc(len(results) - ok)
            reminders_dispatch_success_total.inc()
            logger.info(
                f"[Dispatch] user={user_id} reminder={reminder.id} item={reminder.item_name!r} "
                f"tokens={len(tokens)} ok={ok} failed={len(results) - ok}"
            )

            if ok < len(results):
                pruned = prune_invalid_tokens(self.store, user_id, tokens, results)
                if pruned:
                    pruned_ids = {t.id for t in pruned}
                    outcome.pruned_tokens.extend(t.token for t in pruned)
                    tokens = [t for t in tokens if t.id not in pruned_ids]
        return outcome
