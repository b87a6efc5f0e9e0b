"""Periodic background eviction for the content cache."""

import asyncio
import threading
from typing import Optional

from wikiref.core.logging import get_logger
from wikiref.core.references.cache import ContentCache

_log = get_logger("refs.sweeper")


class MaintenanceSweeper:
    """Runs ``sweep()`` every ``interval`` seconds until stopped."""

    def __init__(self, cache: ContentCache, interval: float = 600.0):
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self._cache = cache
        self.interval = interval
        self._task: Optional[asyncio.Task] = None
        self._sweeping = threading.Lock()
        self.sweeps = 0
        self.skipped = 0
        self.errors = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="wikiref-sweeper")
        _log.debug("Sweeper started", interval=self.interval)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        _log.debug("Sweeper stopped", sweeps=self.sweeps)

    def sweep(self) -> int:
        """Remove expired entries, then oldest entries while over capacity.

        Returns the number of entries removed; 0 if another sweep is running.
        """
        if not self._sweeping.acquire(blocking=False):
            self.skipped += 1
            _log.debug("Sweep skipped, already running")
            return 0
        try:
            expired = self._cache.evict_expired()
            trimmed = self._cache.evict_to_capacity()
            self.sweeps += 1
        finally:
            self._sweeping.release()

        if expired or trimmed:
            _log.info(
                "Cache swept",
                expired=expired,
                trimmed=trimmed,
                entries=len(self._cache),
                bytes=self._cache.total_bytes,
            )
        return expired + trimmed

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                self.sweep()
            except Exception:
                self.errors += 1
                _log.exception("Sweep failed")

    def stats(self) -> dict:
        return {
            "running": self.running,
            "interval": self.interval,
            "sweeps": self.sweeps,
            "skipped": self.skipped,
            "errors": self.errors,
        }
