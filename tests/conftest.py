from datetime import datetime

import pytest

from database.memory_store import MemoryStore
from database.settings_db import SettingsProvider
from tests.helpers import EventRecorder, FakeClock
from utils.events import EventEmitter


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 3, 5, 10, 0, 0))


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def settings():
    return SettingsProvider({})


@pytest.fixture
def emitter():
    return EventEmitter()


@pytest.fixture
def recorder(emitter):
    return EventRecorder(emitter)
