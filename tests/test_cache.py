"""
test_cache.py — Tests for the single-slot TTL record cache.
"""

from plate_registry.cache import RecordCache
from plate_registry.records import PlateRecord


class CountingLoader:
    """Loader that returns a fixed list and counts how often it is called."""

    def __init__(self, records):
        self.records = records
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return list(self.records)


def test_first_get_loads(clock):
    cache = RecordCache(300, clock=clock)
    loader = CountingLoader([PlateRecord("AB12", id=1)])
    assert [r.id for r in cache.get(loader)] == [1]
    assert loader.calls == 1


def test_fresh_snapshot_is_reused(clock):
    cache = RecordCache(300, clock=clock)
    loader = CountingLoader([PlateRecord("AB12", id=1)])
    cache.get(loader)
    clock.advance(299)
    cache.get(loader)
    assert loader.calls == 1


def test_stale_snapshot_is_reloaded(clock):
    cache = RecordCache(300, clock=clock)
    loader = CountingLoader([])
    cache.get(loader)
    clock.advance(300)
    assert not cache.is_fresh()
    cache.get(loader)
    assert loader.calls == 2


def test_invalidate_forces_reload(clock):
    cache = RecordCache(300, clock=clock)
    loader = CountingLoader([])
    cache.get(loader)
    cache.invalidate()
    assert not cache.is_fresh()
    cache.get(loader)
    assert loader.calls == 2


def test_callers_cannot_mutate_snapshot(clock):
    cache = RecordCache(300, clock=clock)
    loader = CountingLoader([PlateRecord("AB12", id=1)])
    cache.get(loader).append(PlateRecord("CD34", id=2))
    assert len(cache.get(loader)) == 1


def test_put_replaces_snapshot(clock):
    cache = RecordCache(300, clock=clock)
    cache.put([PlateRecord("XY99", id=9)])
    loader = CountingLoader([])
    assert [r.plate for r in cache.get(loader)] == ["XY99"]
    assert loader.calls == 0
