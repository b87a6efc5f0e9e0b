"""Tests for the reference resolver."""

import asyncio

import pytest
from conftest import FakeSource, StripSanitizer, page_link

from wikiref.config import PipelineSettings
from wikiref.core.errors import (
    ErrorKind,
    FetchAuthError,
    FetchNetworkError,
    ValidationError,
)
from wikiref.core.references.cache import ContentCache
from wikiref.core.references.gate import ConcurrencyGate
from wikiref.core.references.inflight import InFlightRegistry
from wikiref.core.references.resolver import ReferenceResolver


def _resolver(source, settings, clock):
    cache = ContentCache(settings, clock)
    registry = InFlightRegistry()
    gate = ConcurrencyGate(settings.max_concurrent)
    resolver = ReferenceResolver(source, StripSanitizer(), cache, registry, gate, settings)
    return resolver, cache, registry, gate


# ---------------------------------------------------------------------------
# Basic resolution
# ---------------------------------------------------------------------------


class TestResolve:

    async def test_success_wraps_content(self, source, settings, clock):
        resolver, cache, _, _ = _resolver(source, settings, clock)
        link = page_link(1)

        result = await resolver.resolve([link])

        assert result == {link: "@conf-cnt Alpha@"}
        assert source.calls == ["1"]
        assert cache.get(link).content == "Alpha"

    async def test_empty_input(self, source, settings, clock):
        resolver, *_ = _resolver(source, settings, clock)
        assert await resolver.resolve([]) == {}
        assert source.calls == []

    async def test_duplicates_in_input_collapse(self, source, settings, clock):
        resolver, *_ = _resolver(source, settings, clock)
        link = page_link(1)
        result = await resolver.resolve([link, link, link])
        assert list(result) == [link]
        assert source.calls == ["1"]

    async def test_non_string_link_rejected(self, source, settings, clock):
        resolver, *_ = _resolver(source, settings, clock)
        with pytest.raises(ValidationError):
            await resolver.resolve([page_link(1), 42])

    async def test_cache_hit_skips_source(self, source, settings, clock):
        resolver, *_ = _resolver(source, settings, clock)
        link = page_link(2)
        await resolver.resolve([link])
        results = await resolver.resolve_results([link])

        assert source.calls == ["2"]
        assert results[link].from_cache is True
        assert results[link].replacement_text == "@conf-cnt Beta@"
        assert resolver.metrics.cache_hits == 1

    async def test_ttl_expiry_refetches(self, source, settings, clock):
        resolver, *_ = _resolver(source, settings, clock)
        link = page_link(1)
        await resolver.resolve([link])
        clock.advance(settings.cache_ttl + 1)
        await resolver.resolve([link])
        assert source.calls == ["1", "1"]

    async def test_caching_disabled(self, source, settings, clock):
        resolver, cache, _, _ = _resolver(source, settings, clock)
        link = page_link(1)
        await resolver.resolve([link], caching=False)
        await resolver.resolve([link], caching=False)
        assert source.calls == ["1", "1"]
        assert len(cache) == 0

    async def test_empty_page_keeps_link(self, settings, clock):
        source = FakeSource(pages={"9": "   "})
        resolver, cache, _, _ = _resolver(source, settings, clock)
        link = page_link(9)
        results = await resolver.resolve_results([link])
        assert results[link].succeeded is True
        assert results[link].replacement_text == link
        assert cache.get(link).valid is True


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestFailures:

    async def test_not_found_is_negative_cached(self, source, settings, clock):
        resolver, cache, _, _ = _resolver(source, settings, clock)
        link = page_link(404)

        first = await resolver.resolve_results([link])
        second = await resolver.resolve_results([link])

        assert first[link].succeeded is False
        assert first[link].error_kind is ErrorKind.FETCH_NOT_FOUND
        assert first[link].replacement_text == link
        assert second[link].from_cache is True
        assert second[link].error_kind is ErrorKind.FETCH_NOT_FOUND
        assert source.calls == ["404"]
        assert cache.get(link).valid is False

    async def test_negative_entry_expires(self, source, settings, clock):
        resolver, *_ = _resolver(source, settings, clock)
        link = page_link(404)
        await resolver.resolve([link])
        clock.advance(settings.cache_ttl + 1)
        await resolver.resolve([link])
        assert source.calls == ["404", "404"]

    async def test_malformed_link_never_calls_source(self, source, settings, clock):
        resolver, *_ = _resolver(source, settings, clock)
        link = "https://acme.atlassian.net/wiki/spaces/ENG/overview"
        results = await resolver.resolve_results([link])
        assert results[link].error_kind is ErrorKind.FETCH_MALFORMED_LINK
        assert results[link].replacement_text == link
        assert source.calls == []

    async def test_failures_isolated_per_link(self, settings, clock):
        source = FakeSource(
            pages={"1": "Alpha", "3": "Gamma"},
            errors={"2": FetchAuthError("denied", status_code=401)},
        )
        resolver, *_ = _resolver(source, settings, clock)
        links = [page_link(1), page_link(2), page_link(3)]

        result = await resolver.resolve(links)

        assert result == {
            links[0]: "@conf-cnt Alpha@",
            links[1]: links[1],
            links[2]: "@conf-cnt Gamma@",
        }
        assert resolver.metrics.failures == {"fetch_auth": 1}

    async def test_unexpected_exception_classified(self, settings, clock):
        source = FakeSource(errors={"5": ConnectionResetError("reset")})
        resolver, *_ = _resolver(source, settings, clock)
        results = await resolver.resolve_results([page_link(5)])
        assert results[page_link(5)].error_kind is ErrorKind.FETCH_NETWORK

    async def test_network_error_kind(self, settings, clock):
        source = FakeSource(errors={"6": FetchNetworkError("timeout")})
        resolver, *_ = _resolver(source, settings, clock)
        results = await resolver.resolve_results([page_link(6)])
        assert results[page_link(6)].error_kind is ErrorKind.FETCH_NETWORK


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


class TestConcurrency:

    async def test_concurrent_resolves_dedup(self, settings, clock):
        source = FakeSource(pages={"1": "Alpha"}, delay=0.01)
        resolver, _, registry, _ = _resolver(source, settings, clock)
        link = page_link(1)

        results = await asyncio.gather(*(resolver.resolve([link]) for _ in range(5)))

        assert source.calls == ["1"]
        assert all(r == {link: "@conf-cnt Alpha@"} for r in results)
        assert registry.dedup_count == 4

    async def test_concurrency_bound(self, clock):
        settings = PipelineSettings(max_concurrent=3, max_entries=100)
        source = FakeSource(pages={str(i): f"P{i}" for i in range(50)}, delay=0.002)
        resolver, _, _, gate = _resolver(source, settings, clock)

        links = [page_link(i) for i in range(50)]
        result = await resolver.resolve(links)

        assert len(result) == 50
        assert len(source.calls) == 50
        assert source.peak <= 3
        assert gate.peak_active <= 3

    async def test_sequential_mode(self, clock, settings):
        source = FakeSource(pages={str(i): f"P{i}" for i in range(5)}, delay=0.001)
        resolver, *_ = _resolver(source, settings, clock)
        links = [page_link(i) for i in range(5)]

        await resolver.resolve(links, batching=False)

        assert source.peak == 1
        assert source.calls == ["0", "1", "2", "3", "4"]


# ---------------------------------------------------------------------------
# Session and metrics
# ---------------------------------------------------------------------------


class TestSessionAndMetrics:

    async def test_session_record(self, source, settings, clock):
        resolver, *_ = _resolver(source, settings, clock)
        link = page_link(1)
        await resolver.resolve([link])
        assert resolver.session_content(link) == "@conf-cnt Alpha@"

        assert resolver.clear_session() == 1
        assert resolver.session_content(link) is None

    async def test_metrics(self, source, settings, clock):
        resolver, *_ = _resolver(source, settings, clock)
        await resolver.resolve([page_link(1), page_link(404)])
        await resolver.resolve([page_link(1)])

        metrics = resolver.get_metrics()
        assert metrics["resolve_calls"] == 2
        assert metrics["links_processed"] == 3
        assert metrics["cache_hits"] == 1
        assert metrics["cache_misses"] == 2
        assert metrics["fetches"] == 2
        assert metrics["failures"] == {"fetch_not_found": 1}
        assert metrics["dedup_count"] == 0
        assert metrics["total_time_ms"] >= 0
