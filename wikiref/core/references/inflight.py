"""Registry of in-progress fetches, one shared task per link."""

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from wikiref.core.logging import get_logger

_log = get_logger("refs.inflight")

T = TypeVar("T")


class InFlightRegistry:
    """Deduplicates concurrent work for the same link.

    The first caller starts the work as a task; later callers get the same
    task until it settles. The entry is removed before ``on_settle`` runs
    and before any waiter resumes.
    """

    def __init__(self) -> None:
        self._pending: dict[str, asyncio.Task] = {}
        self.dedup_count = 0

    def __contains__(self, link: object) -> bool:
        return link in self._pending

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def get_or_create(
        self,
        link: str,
        factory: Callable[[], Awaitable[T]],
        on_settle: Optional[Callable[[T], None]] = None,
    ) -> "asyncio.Task[T]":
        task = self._pending.get(link)
        if task is not None and not task.done():
            self.dedup_count += 1
            _log.debug("Joined in-flight fetch", link=link)
            return task

        task = asyncio.create_task(self._run(link, factory, on_settle), name=f"fetch:{link}")
        self._pending[link] = task
        return task

    async def wait(
        self,
        link: str,
        factory: Callable[[], Awaitable[T]],
        on_settle: Optional[Callable[[T], None]] = None,
    ) -> T:
        """Await the shared task; cancelling the caller leaves the task running."""
        return await asyncio.shield(self.get_or_create(link, factory, on_settle))

    async def _run(
        self,
        link: str,
        factory: Callable[[], Awaitable[T]],
        on_settle: Optional[Callable[[T], None]],
    ) -> T:
        try:
            result = await factory()
        finally:
            if self._pending.get(link) is asyncio.current_task():
                del self._pending[link]

        if on_settle is not None:
            try:
                on_settle(result)
            except Exception:
                _log.exception("Settle callback failed", link=link)
        return result

