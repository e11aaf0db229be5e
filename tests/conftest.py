from datetime import timedelta

import pytest

from cleansort.reminders.dispatcher import ReminderDispatcher
from cleansort.reminders.store import InMemoryReminderStore
from tests.helpers import NOW, FakePushGateway


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def store():
    return InMemoryReminderStore()


@pytest.fixture
def gateway():
    return FakePushGateway()


@pytest.fixture
def dispatcher(store, gateway):
    return ReminderDispatcher(
        store,
        gateway,
        lookahead=timedelta(hours=1),
        debounce=timedelta(minutes=5),
        sibling_limit=10,
        notification_title="Disposal Reminder",
    )
