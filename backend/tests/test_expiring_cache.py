from __future__ import annotations

from config_advisor.core.cache import ExpiringCache


class _Clock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def test_entries_expire_after_ttl() -> None:
    clock = _Clock()
    cache = ExpiringCache(10, clock=clock)
    cache.set("k", "v")

    clock.now += 9.9
    assert cache.get("k") == "v"
    clock.now += 0.1
    assert cache.get("k", "missing") == "missing"
    assert len(cache) == 0


def test_get_or_set_caches_falsy_values() -> None:
    cache = ExpiringCache(60, clock=_Clock())
    calls = []

    def factory():
        calls.append(1)
        return []

    assert cache.get_or_set("empty", factory) == []
    assert cache.get_or_set("empty", factory) == []
    assert len(calls) == 1


def test_evict_by_predicate() -> None:
    cache = ExpiringCache(60, clock=_Clock())
    cache.set(("acceptance", "naming"), 1)
    cache.set(("acceptance", "fieldType"), 2)
    cache.set(("dashboard",), 3)

    evicted = cache.evict(lambda key: key[0] == "acceptance" and key[1] == "naming")

    assert evicted == 1
    assert cache.get(("acceptance", "fieldType")) == 2
    cache.clear()
    assert len(cache) == 0
