"""
Freshness cache behaviour: TTL, invalidation and store change notifications.
"""
from __future__ import annotations

from storage.cache import FreshnessCache
from storage.database import KeyValueStore


def test_entry_is_served_until_ttl_elapses(clock):
    cache = FreshnessCache(ttl_seconds=300, clock=clock)
    cache.set("users", [{"id": 1}])

    clock.advance(299.9)
    assert cache.get("users") == [{"id": 1}]

    clock.advance(0.1)
    assert cache.get("users") is None
    assert "users" not in cache


def test_set_overwrites_and_restamps(clock):
    cache = FreshnessCache(ttl_seconds=10, clock=clock)
    cache.set("k", "old")
    clock.advance(8)
    cache.set("k", "new")
    clock.advance(8)

    assert cache.get("k") == "new"


def test_invalidate_and_clear(clock):
    cache = FreshnessCache(clock=clock)
    cache.set("a", 1)
    cache.set("b", 2)

    cache.invalidate("a")
    cache.invalidate("missing")
    assert cache.get("a") is None
    assert cache.get("b") == 2

    cache.clear()
    assert cache.get("b") is None


def test_info_reports_size_and_age(clock):
    cache = FreshnessCache(clock=clock)
    cache.set("users", [1, 2, 3])
    clock.advance(1.5)

    info = cache.info()

    assert info["count"] == 1
    assert info["entries"] == [{"key": "users", "size": len("[1, 2, 3]"), "age": 1500}]
    assert info["totalSize"] == len("[1, 2, 3]")


def test_change_in_another_store_invalidates_exactly_that_key(tmp_path, clock):
    db_path = str(tmp_path / "shared.db")
    tab_a = KeyValueStore(db_path)
    tab_b = KeyValueStore(db_path)
    cache_a = FreshnessCache(clock=clock)
    cache_a.attach(tab_a)
    cache_a.set("users", ["stale"])
    cache_a.set("courses", ["kept"])

    tab_b.set_json("users", ["fresh"])

    assert cache_a.get("users") is None
    assert cache_a.get("courses") == ["kept"]

    tab_a.close()
    tab_b.close()


def test_own_writes_do_not_notify_own_listeners(tmp_path, clock):
    store = KeyValueStore(str(tmp_path / "solo.db"))
    cache = FreshnessCache(clock=clock)
    cache.attach(store)
    cache.set("users", ["cached"])

    store.set_json("users", ["written"])

    assert cache.get("users") == ["cached"]
    store.close()
