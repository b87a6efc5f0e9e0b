"""Circuit breaker guarding calls to one remote Confluence site."""

from enum import Enum
from typing import Optional

from wikiref.core.logging import get_logger
from wikiref.core.utils.clock import SYSTEM_CLOCK, Clock

_log = get_logger("core.circuit_breaker")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """CLOSED (normal) -> OPEN (failing) -> HALF_OPEN (probing) -> CLOSED.

    Only failures the caller chooses to record count; a 404 for one page
    says nothing about the health of the site. A failed probe reopens the
    circuit immediately, whatever the failure count.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        cooldown_sec: float = 30.0,
        half_open_max_probes: int = 1,
        clock: Optional[Clock] = None,
    ):
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        self.name = name
        self.failure_threshold = failure_threshold
        self.cooldown_sec = cooldown_sec
        self.max_probes = half_open_max_probes
        self._clock = clock or SYSTEM_CLOCK
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._opened_at = 0.0
        self._probes = 0
        self.times_opened = 0

    @property
    def state(self) -> CircuitState:
        if self._state == CircuitState.OPEN and self.retry_in() == 0.0:
            self._state = CircuitState.HALF_OPEN
            self._probes = 0
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failures

    def retry_in(self) -> float:
        """Seconds until an open circuit lets a probe through; 0 otherwise."""
        if self._state != CircuitState.OPEN:
            return 0.0
        return max(0.0, self._opened_at + self.cooldown_sec - self._clock.now())

    def allow_request(self) -> bool:
        state = self.state
        if state == CircuitState.HALF_OPEN and self._probes < self.max_probes:
            self._probes += 1
            return True
        return state == CircuitState.CLOSED

    def record_success(self) -> None:
        if self._state == CircuitState.HALF_OPEN:
            _log.info("Circuit closed", name=self.name)
            self._state = CircuitState.CLOSED
        self._failures = 0

    def record_failure(self) -> None:
        self._failures += 1
        probing = self._state == CircuitState.HALF_OPEN
        if probing or (self._state == CircuitState.CLOSED and self._failures >= self.failure_threshold):
            self._open()
        elif self._state == CircuitState.OPEN:
            self._opened_at = self._clock.now()

    def _open(self) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = self._clock.now()
        self.times_opened += 1
        _log.warning(
            "Circuit opened",
            name=self.name,
            failures=self._failures,
            cooldown=self.cooldown_sec,
        )

    def reset(self) -> None:
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._probes = 0

    def stats(self) -> dict:
        return {
            "state": self.state.value,
            "failures": self._failures,
            "times_opened": self.times_opened,
            "retry_in": round(self.retry_in(), 2),
        }
