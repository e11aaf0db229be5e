import logging

from cleansort.reminders.gateway import INVALID_TOKEN, NOT_REGISTERED, QUOTA_EXCEEDED
from cleansort.reminders.pruner import prune_invalid_tokens
from cleansort.reminders.schemas import SendResult


def test_only_permanent_failures_are_deleted(store):
    good = store.add_device_token("u1", "good")
    gone = store.add_device_token("u1", "gone")
    bad = store.add_device_token("u1", "bad")
    busy = store.add_device_token("u1", "busy")
    results = [
        SendResult(success=True, message_id="m1"),
        SendResult(success=False, error_code=NOT_REGISTERED),
        SendResult(success=False, error_code=INVALID_TOKEN),
        SendResult(success=False, error_code=QUOTA_EXCEEDED),
    ]

    pruned = prune_invalid_tokens(store, "u1", [good, gone, bad, busy], results)

    assert [t.token for t in pruned] == ["gone", "bad"]
    assert sorted(t.token for t in store.list_device_tokens("u1")) == ["busy", "good"]


def test_length_mismatch_only_considers_aligned_prefix(store, caplog):
    first = store.add_device_token("u1", "first")
    second = store.add_device_token("u1", "second")

    with caplog.at_level(logging.WARNING):
        pruned = prune_invalid_tokens(
            store, "u1", [first, second], [SendResult(success=False, error_code=NOT_REGISTERED)]
        )

    assert [t.token for t in pruned] == ["first"]
    assert [t.token for t in store.list_device_tokens("u1")] == ["second"]
    assert "aligned prefix" in caplog.text


def test_delete_failure_is_logged_and_skipped(store):
    token = store.add_device_token("u1", "tokA")

    def delete_device_token(user_id, token_id):
        raise ConnectionError("write rejected")

    store.delete_device_token = delete_device_token

    pruned = prune_invalid_tokens(store, "u1", [token], [SendResult(success=False, error_code=NOT_REGISTERED)])

    assert pruned == []
