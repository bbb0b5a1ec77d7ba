import pytest

from parcel_pulse.io.session_store import SessionStore
from parcel_pulse.io.storage import MemoryStore


class Clock:
    def __init__(self, start=1_000):
        self.now = start

    def __call__(self):
        return self.now


def _store(clock=None, badge=None):
    return SessionStore(MemoryStore(), on_change=badge, clock=clock or Clock())


def test_put_creates_record_with_consistent_timestamps():
    clock = Clock(5_000)
    store = _store(clock)
    rec = store.put("www.amazon.it", anti_forgery_token="tok", cookie_header="a=1")
    assert rec.domain == "www.amazon.it"
    assert rec.updated_at == 5_000
    assert rec.captured_at == rec.updated_at
    assert store.get("www.amazon.it") == rec


def test_put_merges_onto_existing_record():
    clock = Clock(1_000)
    store = _store(clock)
    store.put("d", anti_forgery_token="t1", cookie_header="a=1", source_url="https://d/x")
    clock.now = 2_000
    rec = store.put("d", anti_forgery_token="t2")
    assert rec.anti_forgery_token == "t2"
    assert rec.cookie_header == "a=1"
    assert rec.source_url == "https://d/x"
    assert rec.captured_at == 1_000
    assert rec.updated_at == 2_000


def test_updated_at_never_moves_backwards():
    clock = Clock(3_000)
    store = _store(clock)
    store.put("d", cookie_header="a=1")
    clock.now = 1_000
    assert store.put("d", cookie_header="a=2").updated_at == 3_000


def test_delete_then_get_is_absent():
    store = _store()
    store.put("d", cookie_header="a=1")
    store.delete("d")
    assert store.get("d") is None
    store.delete("d")


def test_clear_and_get_all():
    store = _store()
    store.put("a", cookie_header="x")
    store.put("b", cookie_header="y")
    assert set(store.get_all()) == {"a", "b"}
    store.clear()
    assert store.get_all() == {}


def test_most_recent():
    clock = Clock(1)
    store = _store(clock)
    assert store.most_recent() is None
    store.put("a", cookie_header="x")
    clock.now = 10
    store.put("b", cookie_header="y")
    clock.now = 20
    store.put("a", cookie_header="z")
    assert store.most_recent().domain == "a"


def test_every_mutation_reports_domain_count():
    counts = []
    store = _store(badge=counts.append)
    store.put("a", cookie_header="x")
    store.put("b", cookie_header="y")
    store.put("a", anti_forgery_token="t")
    store.delete("b")
    store.clear()
    assert counts == [1, 2, 2, 1, 0]


def test_put_rejects_unknown_fields_and_empty_domain():
    store = _store()
    with pytest.raises(TypeError):
        store.put("d", bogus=1)
    with pytest.raises(ValueError):
        store.put("", cookie_header="x")


def test_backing_store_failures_propagate():
    class Broken:
        def get(self, key):
            raise OSError("disk gone")

        def set(self, key, value):
            raise OSError("disk gone")

        def remove(self, key):
            raise OSError("disk gone")

    with pytest.raises(OSError):
        SessionStore(Broken()).get("d")
