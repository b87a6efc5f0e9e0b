"""Tests for the in-flight request registry."""

import asyncio
from unittest.mock import MagicMock

import pytest

from wikiref.core.references.inflight import InFlightRegistry


class TestInFlightRegistry:

    async def test_single_caller(self):
        registry = InFlightRegistry()

        async def work():
            return "done"

        assert await registry.wait("a", work) == "done"
        assert registry.pending_count == 0
        assert registry.dedup_count == 0

    async def test_concurrent_callers_share_one_task(self):
        registry = InFlightRegistry()
        release = asyncio.Event()
        calls = 0

        async def work():
            nonlocal calls
            calls += 1
            await release.wait()
            return "shared"

        waiters = [asyncio.create_task(registry.wait("a", work)) for _ in range(5)]
        await asyncio.sleep(0)
        assert "a" in registry
        assert registry.pending_count == 1

        release.set()
        results = await asyncio.gather(*waiters)
        assert results == ["shared"] * 5
        assert calls == 1
        assert registry.dedup_count == 4

    async def test_entry_removed_before_on_settle(self):
        registry = InFlightRegistry()
        seen = []

        async def work():
            return 1

        def on_settle(result):
            seen.append(("a" in registry, result))

        await registry.wait("a", work, on_settle)
        assert seen == [(False, 1)]

    async def test_failing_on_settle_does_not_leak(self):
        registry = InFlightRegistry()
        on_settle = MagicMock(side_effect=RuntimeError("cache write failed"))

        async def work():
            return "ok"

        assert await registry.wait("a", work, on_settle) == "ok"
        on_settle.assert_called_once_with("ok")
        assert "a" not in registry

    async def test_exception_removes_entry(self):
        registry = InFlightRegistry()

        async def work():
            raise ValueError("boom")

        with pytest.raises(ValueError):
            await registry.wait("a", work)
        assert "a" not in registry

    async def test_cancelled_caller_does_not_cancel_shared_task(self):
        registry = InFlightRegistry()
        release = asyncio.Event()

        async def work():
            await release.wait()
            return "value"

        first = asyncio.create_task(registry.wait("a", work))
        second = asyncio.create_task(registry.wait("a", work))
        await asyncio.sleep(0)

        first.cancel()
        with pytest.raises(asyncio.CancelledError):
            await first

        release.set()
        assert await second == "value"

    async def test_new_task_after_settle(self):
        registry = InFlightRegistry()
        calls = 0

        async def work():
            nonlocal calls
            calls += 1
            return calls

        assert await registry.wait("a", work) == 1
        assert await registry.wait("a", work) == 2
        assert registry.dedup_count == 0

    async def test_distinct_links_run_separately(self):
        registry = InFlightRegistry()

        async def work_for(value):
            await asyncio.sleep(0)
            return value

        results = await asyncio.gather(
            registry.wait("a", lambda: work_for("A")),
            registry.wait("b", lambda: work_for("B")),
        )
        assert results == ["A", "B"]
        assert registry.dedup_count == 0
