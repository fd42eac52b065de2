"""
Shared fixtures: a scriptable searcher, a temp-file history store and
in-memory settings. No network access.
"""

import threading
from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from models import HistoryEntry, HistoryLimit, SearchResult
from services import HistoryStore


class FakeSearcher:
    """Searcher whose answers and response timing are set by the test.

    ``hold(text)`` makes searches for ``text`` block in their worker thread until
    ``release(text)`` is called.
    """

    def __init__(self, results=None, error=None):
        self.results = dict(results or {})
        self.error = error
        self.calls = []
        self._gates = {}

    def hold(self, text):
        self._gates[text] = threading.Event()

    def release(self, text):
        self._gates[text].set()

    def search(self, text):
        self.calls.append(text)
        gate = self._gates.get(text)
        if gate is not None:
            gate.wait(timeout=5)
        if self.error is not None:
            raise self.error
        return self.results.get(text)


def make_result(video_id, title=None):
    return SearchResult(
        title=title or f"Song {video_id}",
        video_id=video_id,
        thumbnail_url=f"https://img.example/{video_id}.jpg",
        accessibility_label=f"Song • Artist {video_id} • 3:00",
    )


def make_entry(video_id, title=None, minutes_ago=0):
    return HistoryEntry(
        video_id=video_id,
        title=title or f"Song {video_id}",
        thumbnail_url=f"https://img.example/{video_id}.jpg",
        accessibility_label=f"Song • Artist {video_id} • 3:00",
        timestamp=datetime(2024, 1, 1, 12, 0) - timedelta(minutes=minutes_ago),
    )


@pytest.fixture
def searcher():
    return FakeSearcher()


@pytest.fixture
def history_store(tmp_path):
    return HistoryStore(str(tmp_path / "history.json"))


@pytest.fixture
def settings():
    return SimpleNamespace(history_limit=HistoryLimit.FIVE, server_address="http://127.0.0.1:26538/")


@pytest.fixture
def result_factory():
    return make_result


@pytest.fixture
def entry_factory():
    return make_entry
