"""
Retry with exponential backoff for remote listing calls.

Errors are split into permanent (retrying cannot help: access denied,
not found, limits exceeded, cancellation) and transient (everything
else, including unknown errors and network failures).
"""

import logging
import random
import time
from typing import Callable, Optional, TypeVar

from bqcost.config import IngestConfig
from bqcost.ingestion.context import RunContext
from bqcost.ingestion.exceptions import (
    ApiError,
    Cancelled,
    ResourceLimitError,
    StateError,
)
from bqcost.logging_config import get_logger

T = TypeVar("T")

# Reason codes from https://cloud.google.com/bigquery/docs/error-messages
# that mean the same request will fail again.
PERMANENT_REASONS = frozenset({
    "accessDenied",
    "billingNotEnabled",
    "blocked",
    "duplicate",
    "invalid",
    "invalidQuery",
    "notFound",
    "notImplemented",
    "responseTooLarge",
})


def is_permanent_error(exc: BaseException) -> bool:
    """Return True if retrying `exc` cannot succeed."""
    if isinstance(exc, (ResourceLimitError, Cancelled, StateError)):
        return True
    if isinstance(exc, ApiError):
        return any(reason in PERMANENT_REASONS for reason in exc.reasons)
    return False


class RetryPolicy:
    """
    Exponential backoff: the n-th wait is initial_interval * multiplier**n,
    randomized by +/- randomization_factor and capped at max_interval.

    With the defaults (100ms, x2, cap 1s, 4 retries) a call gets five
    attempts spread over roughly 1.5 seconds.
    """

    def __init__(
        self,
        initial_interval: float = 0.1,
        max_interval: float = 1.0,
        multiplier: float = 2.0,
        max_retries: int = 4,
        randomization_factor: float = 0.5,
        rand: Callable[[], float] = random.random,
        sleep: Callable[[float], None] = time.sleep,
        logger: Optional[logging.Logger] = None,
    ):
        self.initial_interval = initial_interval
        self.max_interval = max_interval
        self.multiplier = multiplier
        self.max_retries = max_retries
        self.randomization_factor = randomization_factor
        self._rand = rand
        self._sleep = sleep
        self._logger = logger or get_logger(__name__)

    @classmethod
    def from_config(cls, config: IngestConfig, **kwargs) -> "RetryPolicy":
        return cls(
            initial_interval=config.initial_interval_seconds,
            max_interval=config.max_interval_seconds,
            multiplier=config.multiplier,
            max_retries=config.max_retries,
            randomization_factor=config.randomization_factor,
            **kwargs,
        )

    def backoff(self, retry: int) -> float:
        """Wait before retry number `retry` (0-based)."""
        base = min(self.max_interval, self.initial_interval * self.multiplier ** retry)
        delta = self.randomization_factor * base
        jittered = base - delta + self._rand() * 2 * delta
        return min(self.max_interval, jittered)

    def execute(self, operation: Callable[[], T], ctx: Optional[RunContext] = None) -> T:
        """Run `operation` until it succeeds, fails permanently or retries run out.

        The first attempt always runs. Once `ctx` is done, its
        cancellation error is raised instead of the operation's error.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                return operation()
            except Exception as e:
                if is_permanent_error(e):
                    raise
                if ctx is not None:
                    ctx_err = ctx.error()
                    if ctx_err is not None:
                        raise ctx_err from e
                if attempt > self.max_retries:
                    self._logger.warning(f"Giving up after {attempt} attempts: {e}")
                    raise
                delay = self.backoff(attempt - 1)
                self._logger.debug(
                    f"Attempt {attempt} failed with transient error, retrying in {delay:.3f}s: {e}"
                )
            if ctx is not None:
                ctx.sleep(delay)
            else:
                self._sleep(delay)
