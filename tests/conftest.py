import datetime

import pytest

from learn_french.content import ContentCache
from learn_french.db import DocumentStore


class FakeClock:
    """Returns strictly increasing ISO timestamps, one second apart."""

    def __init__(self):
        self.start = datetime.datetime(2025, 1, 1, tzinfo=datetime.timezone.utc)
        self.ticks = 0

    def __call__(self):
        self.ticks += 1
        return (self.start + datetime.timedelta(seconds=self.ticks)).isoformat()


@pytest.fixture
def store(tmp_path):
    # Temporary SQLite DB
    store = DocumentStore(f"sqlite:///{tmp_path / 'test_content.db'}")
    store.initialize()
    yield store
    store.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def bundled():
    return {
        "word": [{"id": "word-0", "english": "hello", "french": ["bonjour"]}],
        "sentence": [
            {"english": "Good morning.", "french": "Bonjour."},
            {"english": "Good night.", "french": ["Bonne nuit."]},
        ],
        "number": [{"english": "1", "french": ["un"], "category": "number"}],
        "verb": [{"id": "verb-1", "infinitive": "être", "english": "to be"}],
    }


@pytest.fixture
def cache(store, bundled, clock):
    cache = ContentCache(store, bundled=bundled, clock=clock)
    cache.initialize()
    return cache
