"""Tests for the key-value stores."""

import pytest

from rss_keeper.errors import QuotaExceededError
from rss_keeper.storage import MemoryStore, SqlStore


@pytest.fixture(params=["memory", "sql"])
def make_store(request):
    def factory(quota_bytes=None):
        if request.param == "memory":
            return MemoryStore(quota_bytes=quota_bytes)
        return SqlStore.from_url("sqlite:///:memory:", quota_bytes=quota_bytes)

    return factory


def test_set_get_delete(make_store):
    store = make_store()

    assert store.get("feeds") is None
    store.set("feeds", b"[1]")
    store.set("articles", b"[]")
    store.set("feeds", b"[1, 2]")

    assert store.get("feeds") == b"[1, 2]"
    assert store.keys() == ["articles", "feeds"]

    store.delete("feeds")
    store.delete("feeds")
    assert store.get("feeds") is None
    assert store.keys() == ["articles"]


def test_quota_counts_every_key(make_store):
    store = make_store(quota_bytes=10)
    store.set("a", b"12345")

    with pytest.raises(QuotaExceededError):
        store.set("b", b"123456")

    assert store.get("b") is None
    store.set("b", b"12345")


def test_replacing_a_value_does_not_count_it_twice(make_store):
    store = make_store(quota_bytes=8)
    store.set("a", b"1234567")

    store.set("a", b"12345678")

    assert store.get("a") == b"12345678"


def test_sql_store_survives_reopening(tmp_path):
    url = f"sqlite:///{tmp_path / 'store.db'}"
    SqlStore.from_url(url).set("feeds", b"[]")

    assert SqlStore.from_url(url).get("feeds") == b"[]"
