"""FIFO admission control for remote fetches."""

import asyncio
from collections import deque
from typing import Optional


class ConcurrencyGate:
    """Counting semaphore with strict FIFO hand-off.

    ``release()`` passes the slot straight to the oldest waiter, so a
    newcomer can never overtake a queued caller.
    """

    def __init__(self, limit: int = 3) -> None:
        if limit < 1:
            raise ValueError("limit must be >= 1")
        self.limit = limit
        self._active = 0
        self._waiters: deque[asyncio.Future] = deque()
        self.peak_active = 0

    @property
    def active(self) -> int:
        return self._active

    @property
    def waiting(self) -> int:
        return sum(1 for w in self._waiters if not w.done())

    def _take(self) -> None:
        self._active += 1
        if self._active > self.peak_active:
            self.peak_active = self._active

    async def acquire(self) -> None:
        if self._active < self.limit and not self._waiters:
            self._take()
            return

        waiter: asyncio.Future = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Slot was handed over before the cancellation landed
                self.release()
            else:
                if waiter in self._waiters:
                    self._waiters.remove(waiter)
            raise

    def release(self) -> None:
        if self._active <= 0:
            raise RuntimeError("ConcurrencyGate released too many times")
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return
        self._active -= 1

    async def __aenter__(self) -> "ConcurrencyGate":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> Optional[bool]:
        self.release()
        return None

    def stats(self) -> dict:
        return {
            "limit": self.limit,
            "active": self._active,
            "waiting": self.waiting,
            "peak_active": self.peak_active,
        }
