"""Monotonic clock and deadline tracking for bounded waits."""

import time
from dataclasses import dataclass, field
from typing import Protocol


class Clock(Protocol):
    """Source of monotonic time that can also block."""

    def monotonic(self) -> float: ...

    def sleep(self, seconds: float) -> None: ...


class SystemClock:
    """Clock backed by the time module."""

    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)


@dataclass(frozen=True)
class Deadline:
    """A start instant plus a timeout, queried against a clock.

    Attributes:
        started_at: Clock reading when the deadline was created
        timeout: Allowed duration in seconds
        clock: Clock used for all queries
    """

    started_at: float
    timeout: float
    clock: Clock = field(default_factory=SystemClock, repr=False, compare=False)

    @classmethod
    def start(cls, timeout: float, clock: Clock | None = None) -> "Deadline":
        """Start a deadline now.

        Args:
            timeout: Allowed duration in seconds
            clock: Clock to read; defaults to the system clock

        Returns:
            A new Deadline anchored at the current clock reading
        """
        clock = clock or SystemClock()
        return cls(started_at=clock.monotonic(), timeout=timeout, clock=clock)

    def elapsed(self) -> float:
        return self.clock.monotonic() - self.started_at

    def remaining(self) -> float:
        return max(0.0, self.timeout - self.elapsed())

    def expired(self) -> bool:
        return self.elapsed() >= self.timeout
