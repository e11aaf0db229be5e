from datetime import timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cleansort.db.base import Base
from cleansort.db.init_db import init_db
from cleansort.reminders.models import DeviceToken, Item, Reminder
from cleansort.reminders.repository import SqlAlchemyReminderStore
from cleansort.reminders.store import RecordNotFoundError


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def sql_store(session_factory):
    return SqlAlchemyReminderStore(session_factory)


def _seed(session_factory, *rows):
    with session_factory() as db:
        db.add_all(rows)
        db.commit()


def test_due_query_uses_due_date_only(session_factory, sql_store, now):
    _seed(
        session_factory,
        Reminder(id="past", item_id="i1", item_name="Milk", category="recyclable", due_date=now - timedelta(days=1), status="completed"),
        Reminder(id="soon", item_id="i1", item_name="Milk", category="recyclable", due_date=now + timedelta(minutes=5)),
        Reminder(id="later", item_id="i1", item_name="Milk", category="recyclable", due_date=now + timedelta(days=2)),
    )

    due = sql_store.query_reminders_due_before(now + timedelta(hours=1))

    assert [r.id for r in due] == ["past", "soon"]
    assert due[0].status == "completed"
    assert due[1].due_date == now + timedelta(minutes=5)
    assert due[1].due_date.tzinfo is not None


def test_sibling_query_is_ordered_and_limited(session_factory, sql_store, now):
    _seed(
        session_factory,
        *[
            Reminder(id=f"r{n}", item_id="i1", due_date=now, created_at=now - timedelta(days=n))
            for n in range(4)
        ],
        Reminder(id="other", item_id="i2", due_date=now),
    )

    siblings = sql_store.query_reminders_by_item("i1", limit=2)

    assert [r.id for r in siblings] == ["r3", "r2"]


def test_updates_and_not_found(session_factory, sql_store, now):
    _seed(
        session_factory,
        Item(id="i1", user_id=None, name="Milk", category="recyclable"),
        Reminder(id="r1", item_id="i1", due_date=now, user_id=""),
    )

    sql_store.update_item("i1", user_id="u1")
    sql_store.update_reminder("r1", user_id="u1", last_notification_sent=now)

    assert sql_store.get_item("i1").user_id == "u1"
    record = sql_store.get_reminder("r1")
    assert record.user_id == "u1"
    assert record.last_notification_sent == now

    with pytest.raises(RecordNotFoundError):
        sql_store.update_reminder("missing", user_id="u1")
    with pytest.raises(RecordNotFoundError):
        sql_store.update_item("missing", user_id="u1")
    with pytest.raises(ValueError):
        sql_store.update_reminder("r1", colour="red")


def test_delete_reminder_is_idempotent(session_factory, sql_store, now):
    _seed(session_factory, Reminder(id="r1", item_id="i1", due_date=now))

    sql_store.delete_reminder("r1")
    sql_store.delete_reminder("r1")

    assert sql_store.get_reminder("r1") is None


def test_device_tokens_are_scoped_to_user(session_factory, sql_store, now):
    _seed(
        session_factory,
        DeviceToken(id="t1", user_id="u1", token="tokA", platform="ios", created_at=now - timedelta(days=2)),
        DeviceToken(id="t2", user_id="u1", token="tokB", platform="android", created_at=now - timedelta(days=1)),
        DeviceToken(id="t3", user_id="u2", token="tokC"),
    )

    assert [t.token for t in sql_store.list_device_tokens("u1")] == ["tokA", "tokB"]

    # Another user's token id is not touched
    sql_store.delete_device_token("u1", "t3")
    sql_store.delete_device_token("u1", "t1")

    assert [t.token for t in sql_store.list_device_tokens("u1")] == ["tokB"]
    assert [t.token for t in sql_store.list_device_tokens("u2")] == ["tokC"]


def test_ping(sql_store):
    sql_store.ping()
