"""
Token bucket rate limiter for outbound API requests.

One limiter is shared by every call an ingestion run makes, so the run
as a whole never exceeds `rate` requests per second after the initial
burst.
"""

import math
import threading
import time
from typing import Callable, Optional

from bqcost.ingestion.context import RunContext
from bqcost.ingestion.exceptions import Cancelled, DeadlineExceeded


class RateLimiter:
    """
    Token bucket rate limiter.

    The bucket holds at most `burst` tokens and refills at `rate` tokens
    per second. acquire() takes a token immediately when one is present;
    otherwise it reserves the next one and waits until it is due.
    """

    def __init__(
        self,
        rate: float,
        burst: int,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if rate <= 0:
            raise ValueError(f"rate must be positive, got {rate}")
        if not math.isinf(rate) and burst < 1:
            raise ValueError(f"burst must be at least 1 for a finite rate, got {burst}")
        self.rate = rate
        self.burst = burst
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._tokens = float(burst)
        self._last = clock()

    @property
    def unlimited(self) -> bool:
        return math.isinf(self.rate)

    def _refill(self, now: float) -> None:
        elapsed = max(0.0, now - self._last)
        self._tokens = min(float(self.burst), self._tokens + elapsed * self.rate)
        self._last = now

    def acquire(self, ctx: Optional[RunContext] = None) -> None:
        """Block until a token is available.

        Raises the context's error if it is done before or during the
        wait, and DeadlineExceeded up front if the wait would outlast the
        context deadline. A token reserved for a failed wait is returned
        to the bucket.
        """
        if ctx is not None:
            ctx.check()
        if self.unlimited:
            return

        with self._lock:
            self._refill(self._clock())
            self._tokens -= 1
            wait = -self._tokens / self.rate if self._tokens < 0 else 0.0
            if wait > 0 and ctx is not None:
                remaining = ctx.remaining()
                if remaining is not None and wait > remaining:
                    self._tokens += 1
                    raise DeadlineExceeded(
                        f"rate limiter wait of {wait:.3f}s would exceed context deadline"
                    )

        if wait <= 0:
            return
        if ctx is None:
            self._sleep(wait)
            return
        try:
            ctx.sleep(wait)
        except Cancelled:
            with self._lock:
                self._refill(self._clock())
                self._tokens = min(float(self.burst), self._tokens + 1)
            raise
