"""Reference resolution pipeline: the single entry point used by callers."""

import asyncio
import dataclasses
import uuid
from typing import Optional

from wikiref.config import PipelineSettings, ResolveConfig, load_confluence_config
from wikiref.core.errors import DebounceCancelled, ValidationError
from wikiref.core.logging import get_logger, request_scope
from wikiref.core.references.cache import ContentCache
from wikiref.core.references.debounce import DebounceScheduler
from wikiref.core.references.extractor import count_links, extract_links, substitute_links
from wikiref.core.references.gate import ConcurrencyGate
from wikiref.core.references.inflight import InFlightRegistry
from wikiref.core.references.resolver import ContentSource, ReferenceResolver, Sanitizer
from wikiref.core.references.sweeper import MaintenanceSweeper
from wikiref.core.utils.clock import Clock
from wikiref.protocols.confluence import ConfluenceContentSource, HtmlSanitizer

_log = get_logger("refs.pipeline")


class ReferencePipeline:
    """Owns one cache, registry, gate, resolver, debouncer and sweeper.

    Nothing is shared between instances, so two pipelines never see each
    other's cache or pending work.

    Usage:
        async with ReferencePipeline.from_env() as pipeline:
            text = await pipeline.resolve_text(text, ResolveConfig(base_url=url))
    """

    def __init__(
        self,
        source: ContentSource,
        sanitizer: Optional[Sanitizer] = None,
        settings: Optional[PipelineSettings] = None,
        clock: Optional[Clock] = None,
    ):
        self.settings = settings or PipelineSettings()
        if sanitizer is None:
            sanitizer = HtmlSanitizer(self.settings.sanitize_format, self.settings.max_content_chars)

        self.source = source
        self.sanitizer = sanitizer
        self.cache = ContentCache(self.settings, clock)
        self.registry = InFlightRegistry()
        self.gate = ConcurrencyGate(self.settings.max_concurrent)
        self.resolver = ReferenceResolver(
            source, sanitizer, self.cache, self.registry, self.gate, self.settings
        )
        self.debouncer = DebounceScheduler(self.settings)
        self.sweeper = MaintenanceSweeper(self.cache, self.settings.sweep_interval)

    @classmethod
    def from_env(cls, **overrides) -> "ReferencePipeline":
        """Build a Confluence-backed pipeline from environment configuration.

        Raises:
            ValidationError: Confluence connection settings are incomplete
        """
        config = load_confluence_config(required=True)
        settings = PipelineSettings.from_env(**overrides)
        sanitizer = HtmlSanitizer(
            settings.sanitize_format,
            settings.max_content_chars,
            base_url=config.sanitized_base_url,
        )
        return cls(ConfluenceContentSource(config), sanitizer, settings)

    async def resolve_text(self, text: str, config: ResolveConfig, *, key: str = "default") -> str:
        """Replace every Confluence link in ``text`` with its page content.

        Links that cannot be resolved stay in place. With debouncing on, a
        newer call for the same ``key`` supersedes this one and this caller
        gets its own text back unchanged.

        Raises:
            ValidationError: missing config, empty base URL or non-string text
        """
        if not isinstance(config, ResolveConfig):
            raise ValidationError("A ResolveConfig is required", field="config")
        if not config.base_url or not config.base_url.strip():
            raise ValidationError("Confluence base URL is empty", field="base_url")
        if not isinstance(text, str):
            raise ValidationError(f"Text must be a string, got {type(text).__name__}", field="text")
        if not text.strip():
            return text

        with request_scope(uuid.uuid4().hex[:8]):
            if not config.debounce:
                return await self._process(text, config)

            links = extract_links(text, config.base_url, self.settings.marker_start, self.settings.marker_end)
            if not links:
                # Still supersedes whatever was pending for this key
                self.debouncer.cancel(key)
                return text

            ticket = self.debouncer.schedule(
                key,
                text,
                lambda t: self._process(t, config),
                link_count=count_links(text, config.base_url, self.settings.marker_start, self.settings.marker_end),
            )
            try:
                return await ticket.wait()
            except DebounceCancelled:
                _log.debug("Superseded call returned unchanged", key=key)
                return text
            except asyncio.CancelledError:
                # Caller went away; a ticket that has not fired must not fetch
                self.debouncer.cancel_ticket(ticket)
                raise

    async def _process(self, text: str, config: ResolveConfig) -> str:
        links = extract_links(text, config.base_url, self.settings.marker_start, self.settings.marker_end)
        if not links:
            return text

        replacements = await self.resolver.resolve(
            links, caching=config.caching, batching=config.batching
        )
        return substitute_links(text, replacements, self.settings.marker_start, self.settings.marker_end)

    def clear_cache(self) -> int:
        """Drop every cache entry and the session record. In-flight fetches are left to settle."""
        removed = self.cache.clear()
        self.resolver.clear_session()
        _log.info("Cache cleared", entries=removed)
        return removed

    def clear_session(self) -> None:
        """Cancel pending debounced calls and forget session content; the cache survives."""
        cancelled = self.debouncer.cancel_all()
        cleared = self.resolver.clear_session()
        _log.info("Session cleared", cancelled=cancelled, links=cleared)

    def update_configuration(
        self,
        *,
        max_entries: Optional[int] = None,
        max_bytes: Optional[int] = None,
        cache_ttl: Optional[float] = None,
    ) -> int:
        """Apply new cache limits to the running pipeline. Returns entries evicted."""
        changes = {
            name: value
            for name, value in (("max_entries", max_entries), ("max_bytes", max_bytes), ("cache_ttl", cache_ttl))
            if value is not None
        }
        if not changes:
            return 0
        self.settings = dataclasses.replace(self.settings, **changes)
        return self.cache.reconfigure(
            max_entries=self.settings.max_entries,
            max_bytes=self.settings.max_bytes,
            ttl=self.settings.cache_ttl,
        )

    def get_statistics(self) -> dict:
        cache_stats = self.cache.stats()
        stats = {
            "entry_count": cache_stats["size"],
            "memory_bytes": cache_stats["memory_bytes"],
            "hit_rate": cache_stats["hit_rate"],
            "dedup_count": self.registry.dedup_count,
            "pending_count": self.registry.pending_count,
            "cache": cache_stats,
            "resolver": self.resolver.get_metrics(),
            "debounce": self.debouncer.get_metrics(),
            "gate": self.gate.stats(),
            "sweeper": self.sweeper.stats(),
        }
        source_stats = getattr(self.source, "stats", None)
        if callable(source_stats):
            stats["source"] = source_stats()
        return stats

    def start(self) -> None:
        self.sweeper.start()

    async def aclose(self) -> None:
        self.debouncer.cancel_all()
        await self.sweeper.stop()
        close = getattr(self.source, "aclose", None)
        if close is not None:
            await close()

    async def __aenter__(self) -> "ReferencePipeline":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
