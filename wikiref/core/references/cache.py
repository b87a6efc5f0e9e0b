"""Bounded TTL + LRU cache for resolved page content."""

import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Optional

from wikiref.config import PipelineSettings
from wikiref.core.errors import ErrorKind
from wikiref.core.logging import get_logger
from wikiref.core.references.models import CacheEntry
from wikiref.core.utils.clock import SYSTEM_CLOCK, Clock

_log = get_logger("refs.cache")


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0
    oversized: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0


class ContentCache:
    """Link -> CacheEntry store bounded by TTL, entry count and estimated bytes.

    The OrderedDict order is the LRU order: hits move an entry to the end,
    pressure evicts from the front. All structural changes happen under
    ``_lock`` and never suspend.
    """

    def __init__(self, settings: Optional[PipelineSettings] = None, clock: Optional[Clock] = None):
        settings = settings or PipelineSettings()
        self.ttl = settings.cache_ttl
        self.max_entries = settings.max_entries
        self.max_bytes = settings.max_bytes
        self._entry_ratio = settings.entry_ceiling_ratio
        self.entry_ceiling = int(settings.max_bytes * self._entry_ratio)
        self._size_multiplier = settings.size_multiplier
        self._size_overhead = settings.size_overhead
        self._clock = clock or SYSTEM_CLOCK

        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._total_bytes = 0
        self._lock = threading.Lock()
        self.counters = CacheStats()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, link: object) -> bool:
        return link in self._entries

    @property
    def total_bytes(self) -> int:
        return self._total_bytes

    def estimate_size(self, content: str) -> int:
        return int(len(content) * self._size_multiplier) + self._size_overhead

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.created_at > self.ttl

    def _remove(self, link: str) -> CacheEntry:
        entry = self._entries.pop(link)
        self._total_bytes -= entry.size_bytes
        return entry

    def get(self, link: str) -> Optional[CacheEntry]:
        """Return the live entry for ``link`` or None; expired entries are dropped."""
        now = self._clock.now()
        with self._lock:
            entry = self._entries.get(link)
            if entry is None:
                self.counters.misses += 1
                return None
            if self._is_expired(entry, now):
                self._remove(link)
                self.counters.expirations += 1
                self.counters.misses += 1
                _log.debug("Entry expired", link=link)
                return None
            entry.last_accessed_at = now
            self._entries.move_to_end(link)
            self.counters.hits += 1
            return entry

    def put(
        self,
        link: str,
        content: str,
        succeeded: bool = True,
        error_kind: Optional[ErrorKind] = None,
    ) -> bool:
        """Store a positive or negative entry. Returns False when it was too large to cache."""
        size = self.estimate_size(content)
        if size > self.entry_ceiling:
            self.counters.oversized += 1
            _log.warning(
                "Entry not cached",
                kind=ErrorKind.CACHE_OVERSIZED.value,
                link=link,
                size_bytes=size,
                limit=self.entry_ceiling,
            )
            return False

        now = self._clock.now()
        entry = CacheEntry(
            content=content,
            created_at=now,
            last_accessed_at=now,
            size_bytes=size,
            valid=succeeded,
            error_kind=None if succeeded else (error_kind or ErrorKind.FETCH_SERVER),
        )
        with self._lock:
            if link in self._entries:
                self._remove(link)
            evicted = 0
            while self._entries and (
                len(self._entries) >= self.max_entries
                or self._total_bytes + size > self.max_bytes
            ):
                self._remove(next(iter(self._entries)))
                evicted += 1
            if evicted:
                self.counters.evictions += evicted
                _log.debug("LRU eviction", entries=evicted, bytes=self._total_bytes)
            self._entries[link] = entry
            self._total_bytes += size
        return True

    def evict_expired(self, now: Optional[float] = None) -> int:
        now = self._clock.now() if now is None else now
        with self._lock:
            expired = [k for k, e in self._entries.items() if self._is_expired(e, now)]
            for link in expired:
                self._remove(link)
            self.counters.expirations += len(expired)
        if expired:
            _log.debug("Expired entries removed", entries=len(expired))
        return len(expired)

    def evict_to_capacity(self) -> int:
        """Drop oldest-by-creation entries until both ceilings hold."""
        with self._lock:
            if len(self._entries) <= self.max_entries and self._total_bytes <= self.max_bytes:
                return 0
            by_age = sorted(self._entries.items(), key=lambda item: item[1].created_at)
            removed = 0
            for link, _ in by_age:
                if len(self._entries) <= self.max_entries and self._total_bytes <= self.max_bytes:
                    break
                self._remove(link)
                removed += 1
            self.counters.evictions += removed
        if removed:
            _log.debug("Capacity eviction", entries=removed)
        return removed

    def reconfigure(
        self,
        max_entries: Optional[int] = None,
        max_bytes: Optional[int] = None,
        ttl: Optional[float] = None,
        entry_ceiling_ratio: Optional[float] = None,
    ) -> int:
        """Change limits on the live cache and trim it to fit them.

        Returns:
            Number of entries evicted to meet the new limits
        """
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        if max_bytes is not None and max_bytes < 1:
            raise ValueError("max_bytes must be >= 1")
        if entry_ceiling_ratio is not None and not 0 < entry_ceiling_ratio <= 1:
            raise ValueError("entry_ceiling_ratio must be in (0, 1]")
        with self._lock:
            if max_entries is not None:
                self.max_entries = max_entries
            if max_bytes is not None:
                self.max_bytes = max_bytes
            if ttl is not None:
                self.ttl = ttl
            if entry_ceiling_ratio is not None:
                self._entry_ratio = entry_ceiling_ratio
            self.entry_ceiling = int(self.max_bytes * self._entry_ratio)
        _log.info(
            "Cache reconfigured",
            max_entries=self.max_entries,
            max_bytes=self.max_bytes,
            ttl=self.ttl,
        )
        return self.evict_expired() + self.evict_to_capacity()

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._total_bytes = 0
            self.counters = CacheStats()
        return count

    def stats(self) -> dict:
        with self._lock:
            valid = sum(1 for e in self._entries.values() if e.valid)
            size = len(self._entries)
            total = self._total_bytes
        return {
            "size": size,
            "valid": valid,
            "negative": size - valid,
            "memory_bytes": total,
            "max_entries": self.max_entries,
            "max_bytes": self.max_bytes,
            "ttl_seconds": self.ttl,
            "hits": self.counters.hits,
            "misses": self.counters.misses,
            "evictions": self.counters.evictions,
            "expirations": self.counters.expirations,
            "oversized": self.counters.oversized,
            "hit_rate": round(self.counters.hit_rate, 4),
        }
