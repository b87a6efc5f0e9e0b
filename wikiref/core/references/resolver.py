"""Resolve a batch of links to marker-wrapped page content."""

import asyncio
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, Optional, Protocol

from wikiref.config import PipelineSettings
from wikiref.core.errors import ErrorKind, ValidationError, classify_exception
from wikiref.core.logging import get_logger
from wikiref.core.references.cache import ContentCache
from wikiref.core.references.extractor import extract_page_id, wrap_content
from wikiref.core.references.gate import ConcurrencyGate
from wikiref.core.references.inflight import InFlightRegistry
from wikiref.core.references.models import Err, FetchOutcome, Ok, ResolutionResult

_log = get_logger("refs.resolver")


class ContentSource(Protocol):
    async def fetch_page(self, page_id: str) -> str: ...


class Sanitizer(Protocol):
    def sanitize(self, raw: str) -> str: ...


@dataclass
class ResolverMetrics:
    resolve_calls: int = 0
    links_processed: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    fetches: int = 0
    failures: Counter = field(default_factory=Counter)
    total_time_ms: float = 0.0

    def to_dict(self) -> dict:
        return {
            "resolve_calls": self.resolve_calls,
            "links_processed": self.links_processed,
            "cache_hits": self.cache_hits,
            "cache_misses": self.cache_misses,
            "fetches": self.fetches,
            "failures": dict(self.failures),
            "total_time_ms": round(self.total_time_ms, 2),
        }


class ReferenceResolver:
    """Cache -> in-flight registry -> gate -> content source, per link.

    Every link in the input gets a result; one link failing never affects
    another. Failures leave the link itself as the replacement text.
    """

    def __init__(
        self,
        source: ContentSource,
        sanitizer: Sanitizer,
        cache: ContentCache,
        registry: InFlightRegistry,
        gate: ConcurrencyGate,
        settings: Optional[PipelineSettings] = None,
    ):
        self._source = source
        self._sanitizer = sanitizer
        self._cache = cache
        self._registry = registry
        self._gate = gate
        settings = settings or PipelineSettings()
        self._marker_start = settings.marker_start
        self._marker_end = settings.marker_end
        self._session: dict[str, str] = {}
        self.metrics = ResolverMetrics()

    async def resolve(
        self,
        links: Iterable[str],
        *,
        caching: bool = True,
        batching: bool = True,
    ) -> dict[str, str]:
        """Map each link to its replacement text."""
        results = await self.resolve_results(links, caching=caching, batching=batching)
        return {link: result.replacement_text for link, result in results.items()}

    async def resolve_results(
        self,
        links: Iterable[str],
        *,
        caching: bool = True,
        batching: bool = True,
    ) -> dict[str, ResolutionResult]:
        links = list(links)
        for link in links:
            if not isinstance(link, str):
                raise ValidationError(
                    f"Link must be a string, got {type(link).__name__}", field="links"
                )
        unique = list(dict.fromkeys(links))

        self.metrics.resolve_calls += 1
        if not unique:
            return {}

        start = time.perf_counter()
        if batching:
            resolved = await asyncio.gather(*(self._resolve_one(link, caching) for link in unique))
        else:
            resolved = [await self._resolve_one(link, caching) for link in unique]
        elapsed_ms = (time.perf_counter() - start) * 1000

        results = dict(zip(unique, resolved))
        for link, result in results.items():
            self._session[link] = result.replacement_text

        self.metrics.links_processed += len(unique)
        self.metrics.total_time_ms += elapsed_ms
        failed = sum(1 for r in resolved if not r.succeeded)
        _log.info(
            "Links resolved",
            links=len(unique),
            failed=failed,
            batching=batching,
            ms=round(elapsed_ms, 1),
        )
        return results

    def session_content(self, link: str) -> Optional[str]:
        return self._session.get(link)

    def clear_session(self) -> int:
        count = len(self._session)
        self._session.clear()
        return count

    def get_metrics(self) -> dict:
        data = self.metrics.to_dict()
        data["dedup_count"] = self._registry.dedup_count
        data["session_links"] = len(self._session)
        return data

    async def _resolve_one(self, link: str, caching: bool) -> ResolutionResult:
        if caching:
            entry = self._cache.get(link)
            if entry is not None:
                self.metrics.cache_hits += 1
                if not entry.valid:
                    return ResolutionResult(
                        link=link,
                        replacement_text=link,
                        succeeded=False,
                        error_kind=entry.error_kind,
                        from_cache=True,
                    )
                return ResolutionResult(
                    link=link,
                    replacement_text=self._wrap(link, entry.content),
                    succeeded=True,
                    content=entry.content,
                    from_cache=True,
                )
            self.metrics.cache_misses += 1

        return await self._registry.wait(
            link,
            lambda: self._fetch(link),
            self._store if caching else None,
        )

    async def _fetch(self, link: str) -> ResolutionResult:
        page_id = extract_page_id(link)
        if page_id is None:
            return self._failure(link, Err(ErrorKind.FETCH_MALFORMED_LINK, "no page id in link"))

        outcome = await self._fetch_outcome(page_id)
        if isinstance(outcome, Err):
            return self._failure(link, outcome, page_id=page_id)

        content = self._sanitizer.sanitize(outcome.content)
        return ResolutionResult(
            link=link,
            replacement_text=self._wrap(link, content),
            succeeded=True,
            content=content,
        )

    async def _fetch_outcome(self, page_id: str) -> FetchOutcome:
        # Gate held only around the remote call
        async with self._gate:
            self.metrics.fetches += 1
            try:
                raw = await self._source.fetch_page(page_id)
            except Exception as e:
                return Err(classify_exception(e), str(e))
        return Ok(raw or "")

    def _failure(self, link: str, err: Err, page_id: Optional[str] = None) -> ResolutionResult:
        self.metrics.failures[err.kind.value] += 1
        _log.warning(
            "Fetch failed",
            link=link,
            page_id=page_id,
            kind=err.kind.value,
            error=err.message[:200],
        )
        return ResolutionResult(
            link=link,
            replacement_text=link,
            succeeded=False,
            error_kind=err.kind,
        )

    def _store(self, result: ResolutionResult) -> None:
        if result.succeeded:
            self._cache.put(result.link, result.content, succeeded=True)
        else:
            self._cache.put(result.link, "", succeeded=False, error_kind=result.error_kind)

    def _wrap(self, link: str, content: str) -> str:
        return wrap_content(link, content, self._marker_start, self._marker_end)
