import threading
import time
from collections import deque
from datetime import datetime, timedelta

import pytest

from wurdump.core.errors import ClipboardReadError
from wurdump.core.storage import DatabaseManager, ClipboardRepository


@pytest.fixture(autouse=True)
def data_dir(tmp_path, monkeypatch):
    """Keep every test away from the real application data directory"""
    path = tmp_path / "data"
    monkeypatch.setenv("WURDUMP_DATA_DIR", str(path))
    return path


class FakeClock:
    """Manually advanced clock; every reading is one microsecond later"""

    def __init__(self, start=None):
        self.now = start or datetime(2024, 1, 1, 12, 0, 0)
        self._lock = threading.Lock()

    def __call__(self):
        with self._lock:
            self.now += timedelta(microseconds=1)
            return self.now

    def advance(self, **kwargs):
        with self._lock:
            self.now += timedelta(**kwargs)


class FakeClipboard:
    """Scripted clipboard; once the script runs out the last value repeats"""

    def __init__(self, *values):
        self._values = deque(values)
        self._current = None
        self._lock = threading.Lock()
        self.written = []
        self.reads = 0

    def push(self, *values):
        with self._lock:
            self._values.extend(values)

    def read_text(self):
        with self._lock:
            self.reads += 1
            if self._values:
                self._current = self._values.popleft()
            current = self._current

        if isinstance(current, Exception):
            raise current
        if current is None:
            raise ClipboardReadError("Clipboard holds no text content")
        return current

    def write_text(self, text):
        with self._lock:
            self.written.append(text)
            self._values.append(text)


def wait_for(predicate, timeout=3.0, interval=0.01):
    """Poll predicate until it is truthy or the deadline passes"""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return bool(predicate())


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def database():
    manager = DatabaseManager(":memory:")
    yield manager
    manager.close()


@pytest.fixture
def file_database(tmp_path):
    manager = DatabaseManager(str(tmp_path / "history.db"))
    yield manager
    manager.close()


@pytest.fixture
def repository(database, clock):
    return ClipboardRepository(database, clock=clock)


@pytest.fixture
def clipboard():
    return FakeClipboard()


@pytest.fixture
def wait_until():
    return wait_for
