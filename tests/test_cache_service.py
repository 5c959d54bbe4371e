"""Sheet cache tests (in-memory backend)."""

import time

from app.services.cache_service import SheetCache


def _cache(ttl=30):
    return SheetCache(ttl=ttl, redis_url=None)


def test_set_and_get():
    cache = _cache()
    key = cache.key("sid", "campaigns!A:BT")
    cache.set(key, [["a", "b"]])
    assert cache.get(key) == [["a", "b"]]


def test_miss_returns_none():
    assert _cache().get("sheets:nothing") is None


def test_expiry(monkeypatch):
    cache = _cache(ttl=1)
    key = cache.key("sid", "x!A:B")
    cache.set(key, [])
    real_time = time.time()
    monkeypatch.setattr(time, "time", lambda: real_time + 5)
    assert cache.get(key) is None


def test_zero_ttl_disables_caching():
    cache = _cache(ttl=0)
    key = cache.key("sid", "x!A:B")
    cache.set(key, [["v"]])
    assert cache.get(key) is None


def test_invalidate_matching_only_hits_that_sheet():
    cache = _cache()
    cache.set(cache.key("sid", "campaigns!A:BT"), [["1"]])
    cache.set(cache.key("sid", "selected!A:Z"), [["2"]])
    assert cache.invalidate_matching("campaigns") == 1
    assert cache.get(cache.key("sid", "campaigns!A:BT")) is None
    assert cache.get(cache.key("sid", "selected!A:Z")) == [["2"]]


def test_clear():
    cache = _cache()
    cache.set(cache.key("sid", "a!A:B"), [])
    cache.set(cache.key("sid", "b!A:B"), [])
    cache.clear()
    assert cache.get(cache.key("sid", "a!A:B")) is None


def test_non_redis_url_falls_back_to_memory():
    cache = SheetCache(redis_url="memory://")
    assert cache.backend_name == "memory"
    assert cache.health_check()["status"] == "ok"


def test_explicit_zero_ttl_skips_entry():
    cache = _cache(ttl=30)
    key = cache.key("sid", "x!A:B")
    cache.set(key, [["v"]], ttl=0)
    assert cache.get(key) is None


def test_explicit_ttl_overrides_default(monkeypatch):
    cache = _cache(ttl=300)
    key = cache.key("sid", "x!A:B")
    cache.set(key, [["v"]], ttl=1)
    real_time = time.time()
    monkeypatch.setattr(time, "time", lambda: real_time + 5)
    assert cache.get(key) is None
