"""
Cancellation and deadline handling for one ingestion run.

Every blocking wait in the pipeline (rate limiter, retry backoff) goes
through a RunContext so that shutting the worker down or running past
the run timeout stops the run at the next wait instead of after the
whole listing finishes.
"""

import threading
import time
from typing import Callable, Optional

from bqcost.ingestion.exceptions import Cancelled, DeadlineExceeded


class RunContext:
    """Cancellation token with an optional monotonic deadline."""

    def __init__(
        self,
        deadline: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.deadline = deadline
        self._clock = clock
        self._cancelled = threading.Event()

    @classmethod
    def with_timeout(
        cls, seconds: Optional[float], clock: Callable[[], float] = time.monotonic
    ) -> "RunContext":
        """Create a context that expires `seconds` from now (never, if None)."""
        if seconds is None:
            return cls(clock=clock)
        return cls(deadline=clock() + seconds, clock=clock)

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def remaining(self) -> Optional[float]:
        """Seconds until the deadline, or None without one."""
        if self.deadline is None:
            return None
        return self.deadline - self._clock()

    def error(self) -> Optional[Cancelled]:
        """Return the reason this context is done, or None while it is live."""
        if self._cancelled.is_set():
            return Cancelled()
        if self.deadline is not None and self._clock() >= self.deadline:
            return DeadlineExceeded()
        return None

    def check(self) -> None:
        err = self.error()
        if err is not None:
            raise err

    def sleep(self, seconds: float) -> None:
        """Block for `seconds`, raising as soon as the context is done."""
        target = self._clock() + max(0.0, seconds)
        while True:
            self.check()
            now = self._clock()
            if now >= target:
                return
            wait = target - now
            if self.deadline is not None:
                wait = min(wait, max(0.0, self.deadline - now))
            self._cancelled.wait(wait)
