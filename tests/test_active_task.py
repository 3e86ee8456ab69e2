import pytest

from taskreader.active_task import DEFAULT_LABEL, ActiveTaskCache


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_set_and_get_default_label() -> None:
    clock = FakeClock()
    cache = ActiveTaskCache(ttl_s=60, clock=clock)

    entry = cache.set("1700000000000")

    assert entry.label == DEFAULT_LABEL
    assert cache.get() == entry


def test_entries_expire_after_ttl() -> None:
    clock = FakeClock()
    cache = ActiveTaskCache(ttl_s=60, clock=clock)
    cache.set("a")

    clock.now += 59
    assert cache.get() is not None
    clock.now += 1
    assert cache.get() is None


def test_active_lists_unexpired_entries_by_label() -> None:
    clock = FakeClock()
    cache = ActiveTaskCache(ttl_s=60, clock=clock)
    cache.set("old", label="zeta")
    clock.now += 30
    cache.set("new", label="alpha")
    clock.now += 40

    assert [entry.task_id for entry in cache.active()] == ["new"]


def test_set_replaces_label_and_clear_removes() -> None:
    cache = ActiveTaskCache(ttl_s=60, clock=FakeClock())
    cache.set("first", label="vscode")
    cache.set("second", label="vscode")
    assert cache.get("vscode").task_id == "second"

    cache.clear("vscode")
    assert cache.get("vscode") is None


def test_set_requires_task_id() -> None:
    cache = ActiveTaskCache()
    with pytest.raises(ValueError):
        cache.set("  ")


def test_caches_are_independent() -> None:
    clock = FakeClock()
    first = ActiveTaskCache(clock=clock)
    second = ActiveTaskCache(clock=clock)
    first.set("a")
    assert second.get() is None
