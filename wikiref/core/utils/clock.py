import time
from typing import Protocol


class Clock(Protocol):
    """Monotonic time source in seconds."""

    def now(self) -> float: ...


class SystemClock:

    def now(self) -> float:
        return time.monotonic()


SYSTEM_CLOCK = SystemClock()
