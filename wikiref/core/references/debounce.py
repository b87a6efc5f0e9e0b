"""Adaptive per-key debouncing of resolution calls."""

import asyncio
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from wikiref.config import PipelineSettings
from wikiref.core.errors import DebounceCancelled
from wikiref.core.logging import get_logger
from wikiref.core.references.extractor import count_candidate_links

_log = get_logger("refs.debounce")

URL_PATTERN = re.compile(r"https?://[^\s]+")
SPECIAL_CHAR_PATTERN = re.compile(r"[^\w\s]")


@dataclass
class DebounceTicket:
    """A pending delayed invocation for one key."""

    key: str
    delay: float
    future: asyncio.Future
    task: Optional[asyncio.Task] = None
    cancelled: bool = False
    fired: bool = False

    def cancel(self) -> bool:
        """Cancel unless the callback already started. Returns True if cancelled."""
        if self.fired or self.cancelled:
            return False
        self.cancelled = True
        if self.task is not None:
            self.task.cancel()
        if not self.future.done():
            self.future.cancel()
        return True

    async def wait(self) -> Any:
        """Await the callback result; raises DebounceCancelled if superseded."""
        try:
            return await self.future
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if self.cancelled and (current is None or not current.cancelling()):
                raise DebounceCancelled(self.key) from None
            raise


@dataclass
class KeyMetrics:
    attempts: int = 0
    successes: int = 0
    errors: int = 0
    cancellations: int = 0
    last_delay: float = 0.0

    def to_dict(self) -> dict:
        return {
            "attempts": self.attempts,
            "successes": self.successes,
            "errors": self.errors,
            "cancellations": self.cancellations,
            "last_delay": round(self.last_delay, 3),
        }


@dataclass
class _Totals:
    scheduled: int = 0
    fired: int = 0
    cancelled: int = 0
    per_key: dict[str, KeyMetrics] = field(default_factory=dict)


class DebounceScheduler:
    """One pending ticket per key; scheduling again replaces it.

    The delay adapts to the input: short text fires fast, long, link-heavy
    or structurally dense text waits longer, always within
    [debounce_fast, debounce_slow].
    """

    def __init__(self, settings: Optional[PipelineSettings] = None):
        self._settings = settings or PipelineSettings()
        self._tickets: dict[str, DebounceTicket] = {}
        self._totals = _Totals()

    @staticmethod
    def text_complexity(text: str) -> float:
        """Score in [0, 1] from line count, URLs, punctuation density and alphabet size."""
        if not text:
            return 0.0
        lines = text.count("\n") + 1
        urls = len(URL_PATTERN.findall(text))
        special = len(SPECIAL_CHAR_PATTERN.findall(text))
        unique_chars = len(set(text.lower()))

        score = 0.0
        score += min(lines / 20, 1.0) * 0.3
        score += min(urls / 10, 1.0) * 0.4
        score += min(special / len(text), 1.0) * 0.2
        score += min(unique_chars / 50, 1.0) * 0.1
        return min(score, 1.0)

    def compute_delay(self, text: str, link_count: Optional[int] = None) -> float:
        s = self._settings
        length = len(text or "")
        if length < s.short_text_threshold:
            delay = s.debounce_fast
        elif length > s.long_text_threshold:
            delay = s.debounce_slow
        else:
            ratio = (length - s.short_text_threshold) / (s.long_text_threshold - s.short_text_threshold)
            delay = s.debounce_fast + (s.debounce_slow - s.debounce_fast) * ratio

        links = link_count if link_count is not None else count_candidate_links(text or "")
        if links > s.link_count_threshold:
            delay *= s.link_multiplier
        if self.text_complexity(text or "") > s.complexity_threshold:
            delay *= s.complexity_multiplier

        return min(max(delay, s.debounce_fast), s.debounce_slow)

    def schedule(
        self,
        key: str,
        input_text: str,
        callback: Callable[[str], Awaitable[Any]],
        *,
        delay: Optional[float] = None,
        link_count: Optional[int] = None,
    ) -> DebounceTicket:
        """Schedule ``callback(input_text)`` after the adaptive delay, superseding ``key``."""
        self.cancel(key)

        wait = delay if delay is not None else self.compute_delay(input_text, link_count)
        loop = asyncio.get_running_loop()
        ticket = DebounceTicket(key=key, delay=wait, future=loop.create_future())
        ticket.task = loop.create_task(self._run(ticket, callback, input_text), name=f"debounce:{key}")
        self._tickets[key] = ticket

        metrics = self._key_metrics(key)
        metrics.attempts += 1
        metrics.last_delay = wait
        self._totals.scheduled += 1
        _log.debug("Debounce scheduled", key=key, delay=round(wait, 3), chars=len(input_text or ""))
        return ticket

    def cancel(self, key: str) -> bool:
        ticket = self._tickets.pop(key, None)
        if ticket is None or not ticket.cancel():
            return False
        self._key_metrics(key).cancellations += 1
        self._totals.cancelled += 1
        _log.debug("Debounce cancelled", key=key)
        return True

    def cancel_ticket(self, ticket: DebounceTicket) -> bool:
        """Cancel ``ticket`` only while it is still the pending one for its key."""
        if self._tickets.get(ticket.key) is not ticket:
            return False
        return self.cancel(ticket.key)

    def cancel_all(self) -> int:
        cancelled = 0
        for key in list(self._tickets):
            if self.cancel(key):
                cancelled += 1
        return cancelled

    def is_pending(self, key: str) -> bool:
        ticket = self._tickets.get(key)
        return ticket is not None and not (ticket.cancelled or ticket.fired)

    @property
    def pending_count(self) -> int:
        return sum(1 for key in self._tickets if self.is_pending(key))

    def get_metrics(self) -> dict:
        return {
            "pending": self.pending_count,
            "scheduled": self._totals.scheduled,
            "fired": self._totals.fired,
            "cancelled": self._totals.cancelled,
            "keys": {key: m.to_dict() for key, m in self._totals.per_key.items()},
        }

    def _key_metrics(self, key: str) -> KeyMetrics:
        metrics = self._totals.per_key.get(key)
        if metrics is None:
            metrics = self._totals.per_key[key] = KeyMetrics()
        return metrics

    async def _run(
        self,
        ticket: DebounceTicket,
        callback: Callable[[str], Awaitable[Any]],
        input_text: str,
    ) -> None:
        try:
            await asyncio.sleep(ticket.delay)
        except asyncio.CancelledError:
            if not ticket.future.done():
                ticket.future.cancel()
            raise

        # Nothing between the check and `fired = True` may suspend
        if ticket.cancelled:
            return
        ticket.fired = True
        if self._tickets.get(ticket.key) is ticket:
            del self._tickets[ticket.key]
        self._totals.fired += 1

        metrics = self._key_metrics(ticket.key)
        try:
            result = await callback(input_text)
        except asyncio.CancelledError:
            if not ticket.future.done():
                ticket.future.cancel()
            raise
        except Exception as e:
            metrics.errors += 1
            _log.warning("Debounced call failed", key=ticket.key, error=str(e)[:200])
            if not ticket.future.done():
                ticket.future.set_exception(e)
            return

        metrics.successes += 1
        if not ticket.future.done():
            ticket.future.set_result(result)
