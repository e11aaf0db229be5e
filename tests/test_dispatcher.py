from datetime import timedelta
import threading

from cleansort.reminders.dispatcher import build_data_payload, build_notification
from cleansort.reminders.gateway import NOT_REGISTERED, UNAVAILABLE
from cleansort.reminders.schemas import ReminderRecord
from cleansort.reminders.store import RecordNotFoundError
from tests.helpers import reminder


def test_backfilled_reminder_is_sent_and_stamped(store, gateway, dispatcher, now):
    store.add_reminder({
        "id": "r1",
        "item_id": "i1",
        "item_name": "Milk",
        "category": "recyclable",
        "user_id": "",
        "due_date": now + timedelta(minutes=10),
        "status": "upcoming",
    })
    store.add_item({"id": "i1", "user_id": "u1", "name": "Milk", "category": "recyclable"})
    store.add_device_token("u1", "tokA")

    summary = dispatcher.run_cycle(now=now)

    assert store.get_reminder("r1").user_id == "u1"
    assert len(gateway.sent) == 1
    sent = gateway.sent[0]
    assert sent["tokens"] == ["tokA"]
    assert sent["notification"].title == "Disposal Reminder"
    assert sent["notification"].body == "Time to dispose of Milk"
    assert sent["data"]["reminderId"] == "r1"
    assert sent["data"]["itemId"] == "i1"
    assert store.get_reminder("r1").last_notification_sent == now
    assert [t.token for t in store.list_device_tokens("u1")] == ["tokA"]
    assert summary.eligible == 1
    assert summary.backfilled == 1
    assert summary.notifications_attempted == 1
    assert summary.token_successes == 1
    assert summary.tokens_pruned == 0


def test_permanent_token_failure_prunes_only_that_token(store, gateway, dispatcher, now):
    store.add_reminder(reminder("r1", now, user_id="u1"))
    for token in ("tokA", "tokB", "tokC"):
        store.add_device_token("u1", token)
    gateway.token_errors["tokB"] = NOT_REGISTERED

    summary = dispatcher.run_cycle(now=now)

    assert sorted(t.token for t in store.list_device_tokens("u1")) == ["tokA", "tokC"]
    assert summary.token_successes == 2
    assert summary.token_failures == 1
    assert summary.tokens_pruned == 1
    assert summary.outcomes[0].pruned_tokens == ["tokB"]


def test_transient_token_failure_keeps_token(store, gateway, dispatcher, now):
    store.add_reminder(reminder("r1", now))
    store.add_device_token("u1", "tokA")
    gateway.token_errors["tokA"] = UNAVAILABLE

    summary = dispatcher.run_cycle(now=now)

    assert [t.token for t in store.list_device_tokens("u1")] == ["tokA"]
    assert summary.token_failures == 1
    assert summary.tokens_pruned == 0
    # The attempt still counts as a send for debounce purposes
    assert store.get_reminder("r1").last_notification_sent == now


def test_pruned_token_is_not_used_for_the_next_reminder(store, gateway, dispatcher, now):
    store.add_reminder(reminder("r1", now - timedelta(minutes=2)))
    store.add_reminder(reminder("r2", now - timedelta(minutes=1)))
    store.add_device_token("u1", "tokA")
    store.add_device_token("u1", "dead")
    gateway.token_errors["dead"] = NOT_REGISTERED

    dispatcher.run_cycle(now=now)

    assert [call["tokens"] for call in gateway.sent] == [["tokA", "dead"], ["tokA"]]


def test_failure_for_one_reminder_does_not_stop_the_rest(store, gateway, dispatcher, now):
    store.add_reminder(reminder("a", now - timedelta(minutes=3), user_id="u1"))
    store.add_reminder(reminder("b", now - timedelta(minutes=2), user_id="u1"))
    store.add_reminder(reminder("c", now - timedelta(minutes=1), user_id="u2"))
    store.add_device_token("u1", "tok1")
    store.add_device_token("u2", "tok2")
    gateway.raise_for_reminders["a"] = RuntimeError("FCM exploded")

    summary = dispatcher.run_cycle(now=now)

    assert sorted(call["data"]["reminderId"] for call in gateway.sent) == ["b", "c"]
    assert store.get_reminder("a").last_notification_sent is None
    assert store.get_reminder("b").last_notification_sent == now
    assert store.get_reminder("c").last_notification_sent == now
    assert summary.reminders_failed == 1
    assert summary.notifications_attempted == 2


def test_badge_counts_reminders_for_the_user(store, gateway, dispatcher, now):
    store.add_reminder(reminder("a", now - timedelta(minutes=2)))
    store.add_reminder(reminder("b", now - timedelta(minutes=1)))
    store.add_device_token("u1", "tokA")

    dispatcher.run_cycle(now=now)

    assert [call["options"].badge for call in gateway.sent] == [2, 2]
    assert all(call["options"].sound == "default" for call in gateway.sent)


def test_next_cycle_inside_debounce_sends_nothing(store, gateway, dispatcher, now):
    store.add_reminder(reminder("r1", now + timedelta(minutes=10)))
    store.add_device_token("u1", "tokA")

    dispatcher.run_cycle(now=now)
    second = dispatcher.run_cycle(now=now + timedelta(seconds=30))

    assert len(gateway.sent) == 1
    assert second.eligible == 0
    assert second.notifications_attempted == 0


def test_user_without_tokens_is_skipped(store, gateway, dispatcher, now):
    store.add_reminder(reminder("r1", now))

    summary = dispatcher.run_cycle(now=now)

    assert gateway.sent == []
    assert summary.outcomes[0].skipped_reason == "no_device_tokens"
    assert store.get_reminder("r1").last_notification_sent is None


def test_token_lookup_failure_is_isolated_to_that_user(store, gateway, dispatcher, now):
    store.add_reminder(reminder("r1", now, user_id="broken"))
    store.add_reminder(reminder("r2", now, user_id="u2"))
    store.add_device_token("u2", "tok2")
    original = store.list_device_tokens

    def list_device_tokens(user_id):
        if user_id == "broken":
            raise ConnectionError("token collection unavailable")
        return original(user_id)

    store.list_device_tokens = list_device_tokens

    summary = dispatcher.run_cycle(now=now)

    assert [call["data"]["reminderId"] for call in gateway.sent] == ["r2"]
    failed = [o for o in summary.outcomes if o.user_id == "broken"][0]
    assert failed.skipped_reason == "token_lookup_failed"
    assert failed.failed_reminder_ids == ["r1"]


def test_orphans_are_removed_during_the_cycle(store, gateway, dispatcher, now):
    store.add_reminder(reminder("orphan", now, user_id="", item_id="missing"))

    summary = dispatcher.run_cycle(now=now)

    assert summary.orphaned == 1
    assert store.get_reminder("orphan") is None
    assert gateway.sent == []


def test_overlapping_cycle_is_skipped(store, gateway, dispatcher, now):
    store.add_reminder(reminder("r1", now))
    store.add_device_token("u1", "tokA")
    gateway.block = threading.Event()
    results = []

    worker = threading.Thread(target=lambda: results.append(dispatcher.run_cycle(now=now)))
    worker.start()
    try:
        assert gateway.entered.wait(timeout=5)
        assert dispatcher.cycle_in_progress

        skipped = dispatcher.run_cycle(now=now, trigger="manual")

        assert skipped.skipped
        assert skipped.notifications_attempted == 0
    finally:
        gateway.block.set()
        worker.join(timeout=5)

    assert not results[0].skipped
    assert len(gateway.sent) == 1
    assert not dispatcher.cycle_in_progress
    assert dispatcher.last_summary is results[0]


def test_notification_payload_uses_string_values(now):
    record = ReminderRecord.model_validate(reminder("r1", now, item_name=""))

    assert build_notification(record, "Disposal Reminder").body == "Time to dispose of your item"
    payload = build_data_payload(record)
    assert payload["dueDate"] == "2024-05-01T12:00:00Z"
    assert all(isinstance(v, str) for v in payload.values())


def test_reminder_without_item_id_never_reappears(store, gateway, dispatcher, now):
    store.add_reminder(reminder("r1", now, user_id="", item_id=None))

    first = dispatcher.run_cycle(now=now)
    second = dispatcher.run_cycle(now=now + timedelta(minutes=10))

    assert first.orphaned == 1
    assert second.eligible == 0
    assert store.query_reminders_due_before(now + timedelta(days=1)) == []


def test_failed_stamp_still_counts_results_and_prunes(store, gateway, dispatcher, now):
    store.add_reminder(reminder("r1", now))
    store.add_device_token("u1", "tokA")
    store.add_device_token("u1", "dead")
    gateway.token_errors["dead"] = NOT_REGISTERED

    def update_reminder(reminder_id, **fields):
        # Reminder removed by the CRUD layer between scan and stamp
        raise RecordNotFoundError("reminder", reminder_id)

    store.update_reminder = update_reminder

    summary = dispatcher.run_cycle(now=now)

    assert len(gateway.sent) == 1
    assert summary.notifications_attempted == 1
    assert summary.reminders_failed == 0
    assert summary.token_successes == 1
    assert summary.token_failures == 1
    assert summary.tokens_pruned == 1
    assert [t.token for t in store.list_device_tokens("u1")] == ["tokA"]
