"""
Rate-limited, retried invocation of remote API calls.
"""

from typing import Any, Callable, Optional, TypeVar

from bqcost.ingestion.context import RunContext
from bqcost.ingestion.ratelimit import RateLimiter
from bqcost.ingestion.retry import RetryPolicy

T = TypeVar("T")


class ApiCaller:
    """Runs each call through the shared limiter, inside the retry policy.

    Every attempt, including retries, takes its own token.
    """

    def __init__(self, limiter: RateLimiter, retry: RetryPolicy):
        self.limiter = limiter
        self.retry = retry

    def call(
        self,
        fn: Callable[..., T],
        *args: Any,
        ctx: Optional[RunContext] = None,
    ) -> T:
        def attempt() -> T:
            self.limiter.acquire(ctx)
            return fn(*args)

        return self.retry.execute(attempt, ctx)
