"""Tests for the background cache sweeper."""

import asyncio
from unittest.mock import patch

import pytest

from wikiref.core.references.cache import ContentCache
from wikiref.core.references.sweeper import MaintenanceSweeper


@pytest.fixture
def cache(settings, clock):
    return ContentCache(settings, clock)


# ---------------------------------------------------------------------------
# sweep()
# ---------------------------------------------------------------------------


class TestSweep:

    def test_removes_expired_entries(self, cache, clock):
        cache.put("a", "one")
        clock.advance(30)
        cache.put("b", "two")
        clock.advance(31)

        sweeper = MaintenanceSweeper(cache, interval=1.0)
        assert sweeper.sweep() == 1
        assert "a" not in cache
        assert "b" in cache
        assert sweeper.sweeps == 1

    def test_nothing_to_do(self, cache):
        cache.put("a", "one")
        sweeper = MaintenanceSweeper(cache, interval=1.0)
        assert sweeper.sweep() == 0
        assert len(cache) == 1

    def test_trims_to_capacity(self, cache, clock):
        for i in range(5):
            cache.put(f"link-{i}", "x")
            clock.advance(1)
        cache.max_entries = 3

        sweeper = MaintenanceSweeper(cache, interval=1.0)
        assert sweeper.sweep() == 2
        assert "link-0" not in cache
        assert "link-1" not in cache
        assert len(cache) == 3

    def test_overlapping_sweep_is_skipped(self, cache, clock):
        cache.put("a", "one")
        clock.advance(120)
        sweeper = MaintenanceSweeper(cache, interval=1.0)

        sweeper._sweeping.acquire()
        try:
            assert sweeper.sweep() == 0
        finally:
            sweeper._sweeping.release()

        assert sweeper.skipped == 1
        assert "a" in cache._entries
        assert sweeper.sweep() == 1

    def test_invalid_interval(self, cache):
        with pytest.raises(ValueError):
            MaintenanceSweeper(cache, interval=0)


# ---------------------------------------------------------------------------
# Background loop
# ---------------------------------------------------------------------------


class TestLoop:

    async def test_start_and_stop(self, cache):
        sweeper = MaintenanceSweeper(cache, interval=0.01)
        assert not sweeper.running

        sweeper.start()
        assert sweeper.running
        await asyncio.sleep(0.05)
        await sweeper.stop()

        assert not sweeper.running
        assert sweeper.sweeps >= 1

    async def test_start_twice_keeps_one_task(self, cache):
        sweeper = MaintenanceSweeper(cache, interval=10)
        sweeper.start()
        task = sweeper._task
        sweeper.start()
        assert sweeper._task is task
        await sweeper.stop()

    async def test_stop_without_start(self, cache):
        sweeper = MaintenanceSweeper(cache, interval=1.0)
        await sweeper.stop()
        assert not sweeper.running

    async def test_loop_survives_errors(self, cache):
        sweeper = MaintenanceSweeper(cache, interval=0.01)
        with patch.object(cache, "evict_expired", side_effect=RuntimeError("boom")):
            sweeper.start()
            await asyncio.sleep(0.05)
            assert sweeper.running
            await sweeper.stop()

        assert sweeper.errors >= 1
        assert sweeper.stats()["errors"] == sweeper.errors

    async def test_stats(self, cache):
        sweeper = MaintenanceSweeper(cache, interval=5.0)
        stats = sweeper.stats()
        assert stats == {
            "running": False,
            "interval": 5.0,
            "sweeps": 0,
            "skipped": 0,
            "errors": 0,
        }
