"""Bounded exponential backoff for operations failing on transient errors."""

import random
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TypeVar

import structlog
from tenacity import RetryCallState, Retrying, retry_if_exception, stop_after_attempt
from tenacity.wait import wait_base

from .errors import is_retryable

logger = structlog.get_logger(__name__)

T = TypeVar("T")

MAX_RETRIES = 3
RETRY_BASE_DELAY_MS = 200
RETRY_MAX_DELAY_MS = 1000
RETRY_JITTER_PERCENT = 20


@dataclass
class RetryPolicy:
    """Retry a callable while it fails with a retryable error.

    The callable runs at most ``max_retries + 1`` times. Between two
    attempts the policy sleeps for :meth:`delay_ms` milliseconds; there is
    no sleep after the final attempt. Errors that are not retryable, and
    the last error once retries are exhausted, are re-raised unchanged.

    ``sleep`` and ``rng`` are injectable so tests can observe delays
    without waiting.
    """

    max_retries: int = MAX_RETRIES
    base_delay_ms: int = RETRY_BASE_DELAY_MS
    max_delay_ms: int = RETRY_MAX_DELAY_MS
    jitter_percent: int = RETRY_JITTER_PERCENT
    sleep: Callable[[float], None] = time.sleep
    rng: random.Random = field(default_factory=random.Random)

    def delay_ms(self, attempt: int) -> int:
        """Compute the pause following the failed attempt number ``attempt``.

        Args:
            attempt: Zero-based index of the attempt that just failed.

        Returns:
            ``min(base * 2**attempt, max)`` plus up to ``jitter_percent``
            of that capped value, in whole milliseconds.
        """
        capped = min(self.base_delay_ms * 2**attempt, self.max_delay_ms)
        jitter_span = capped * self.jitter_percent // 100
        jitter = self.rng.randrange(jitter_span) if jitter_span > 0 else 0
        return capped + jitter

    def call(
        self,
        func: Callable[[], T],
        on_retry: Callable[[int, Exception], None] | None = None,
    ) -> T:
        """Run func, retrying it on retryable errors.

        Args:
            func: Zero-argument callable performing one attempt.
            on_retry: Optional hook invoked with the failed attempt index
                and its error before each retry.

        Returns:
            The result of the first successful attempt.

        Raises:
            Exception: The first non-retryable error, or the last error
                once ``max_retries`` extra attempts have failed.
        """

        def before_sleep(retry_state: RetryCallState) -> None:
            err = retry_state.outcome.exception()
            logger.warning(
                "Retrying request after transient error",
                attempt=retry_state.attempt_number,
                max_retries=self.max_retries,
                delay_ms=round(retry_state.next_action.sleep * 1000),
                error=str(err),
            )
            if on_retry is not None:
                on_retry(retry_state.attempt_number - 1, err)

        retrying = Retrying(
            retry=retry_if_exception(is_retryable),
            wait=BackoffWait(self),
            stop=stop_after_attempt(self.max_retries + 1),
            sleep=self.sleep,
            reraise=True,
            before_sleep=before_sleep,
        )
        return retrying(func)


class BackoffWait(wait_base):
    """Tenacity wait strategy delegating to :meth:`RetryPolicy.delay_ms`."""

    def __init__(self, policy: RetryPolicy):
        self._policy = policy

    def __call__(self, retry_state: RetryCallState) -> float:
        return self._policy.delay_ms(retry_state.attempt_number - 1) / 1000
