"""Retry policy engine: exponential backoff with jitter.

RetryConfig describes how often and how patiently to retry, a RetryPolicy
decides per attempt whether to retry and how long to wait, and with_retry()
runs an async operation under tenacity's AsyncRetrying driven by the policy.

Usage:
    config = RetryConfig(max_attempts=5, initial_delay=0.05)
    info = await with_retry(lambda: client.describe_instance(), config)
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from typing import Protocol, Self, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator
from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt

from firecracker_control import constants
from firecracker_control._logging import get_logger
from firecracker_control.error_handling import is_retryable

logger = get_logger(__name__)

T = TypeVar("T")

_JITTER_CENTER = 0.5


class RetryConfig(BaseModel):
    """Immutable retry configuration.

    Attributes:
        max_attempts: Total attempts including the first one (>= 1)
        initial_delay: Delay before the second attempt, in seconds (> 0)
        max_delay: Cap on the pre-jitter delay, in seconds (>= initial_delay)
        backoff_multiplier: Growth factor between consecutive delays (>= 1.0)
        jitter_factor: Relative random perturbation of each delay (0.0 - 1.0)
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_attempts: int = Field(default=constants.RETRY_MAX_ATTEMPTS, ge=1)
    initial_delay: float = Field(default=constants.RETRY_INITIAL_DELAY_SECONDS, gt=0)
    max_delay: float = Field(default=constants.RETRY_MAX_DELAY_SECONDS, gt=0)
    backoff_multiplier: float = Field(default=constants.RETRY_BACKOFF_MULTIPLIER, ge=1.0)
    jitter_factor: float = Field(default=constants.RETRY_JITTER_FACTOR, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _check_delays(self) -> Self:
        if self.max_delay < self.initial_delay:
            raise ValueError(f"max_delay ({self.max_delay}) must be >= initial_delay ({self.initial_delay})")
        return self


DEFAULT_RETRY = RetryConfig()
"""Default retry configuration for most operations."""

AGGRESSIVE_RETRY = RetryConfig(
    max_attempts=5,
    initial_delay=0.05,
    max_delay=10.0,
    backoff_multiplier=1.5,
    jitter_factor=0.2,
)
"""More attempts with shorter initial delay, for critical operations."""

CONSERVATIVE_RETRY = RetryConfig(
    max_attempts=2,
    initial_delay=0.5,
    max_delay=2.0,
    backoff_multiplier=1.0,
    jitter_factor=0.0,
)
"""Single retry after a fixed delay, for expensive operations."""

NO_RETRY = RetryConfig(max_attempts=1)
"""Fail immediately on the first error."""


class RetryPolicy(Protocol):
    """Decides whether and when to retry.

    ``attempt`` is the 1-based number of the attempt that just failed.
    """

    def should_retry(self, error: BaseException, attempt: int, config: RetryConfig) -> bool: ...

    def calculate_delay(self, attempt: int, config: RetryConfig) -> float: ...


class DefaultRetryPolicy:
    """Retry transport timeouts, transport I/O errors and 5xx responses.

    Delay for attempt k is ``initial_delay * backoff_multiplier ** (k - 1)``
    capped at ``max_delay``, plus jitter in
    ``[-jitter_factor / 2, +jitter_factor / 2] * capped``, clamped at zero.
    """

    def __init__(self, rand: Callable[[], float] = random.random) -> None:
        self._rand = rand

    def should_retry(self, error: BaseException, attempt: int, config: RetryConfig) -> bool:
        if attempt >= config.max_attempts:
            return False
        return is_retryable(error)

    @staticmethod
    def base_delay(attempt: int, config: RetryConfig) -> float:
        """Pre-jitter delay after ``attempt``, capped at max_delay."""
        exponential = config.initial_delay * config.backoff_multiplier ** (attempt - 1)
        return min(exponential, config.max_delay)

    def calculate_delay(self, attempt: int, config: RetryConfig) -> float:
        capped = self.base_delay(attempt, config)
        jitter = capped * config.jitter_factor * (self._rand() - _JITTER_CENTER)
        return max(0.0, capped + jitter)


DEFAULT_POLICY = DefaultRetryPolicy()


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig = DEFAULT_RETRY,
    policy: RetryPolicy = DEFAULT_POLICY,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    name: str = "operation",
) -> T:
    """Run ``operation`` until it succeeds or the policy gives up.

    Attempts run sequentially; between attempts the coroutine sleeps for the
    policy's delay (cancellable, so an enclosing asyncio.timeout() still
    applies across attempts).

    Returns:
        The operation's result from the first successful attempt.

    Raises:
        BaseException: The last error raised by the operation, unchanged.
    """

    def _should_retry(state: RetryCallState) -> bool:
        outcome = state.outcome
        if outcome is None or not outcome.failed:
            return False
        error = outcome.exception()
        return error is not None and policy.should_retry(error, state.attempt_number, config)

    def _delay(state: RetryCallState) -> float:
        return policy.calculate_delay(state.attempt_number, config)

    def _log_retry(state: RetryCallState) -> None:
        error = state.outcome.exception() if state.outcome is not None else None
        logger.warning(
            "Retrying %s in %.3fs (attempt %d/%d failed): %s",
            name,
            state.upcoming_sleep,
            state.attempt_number,
            config.max_attempts,
            error,
            extra={"operation": name, "attempt": state.attempt_number},
        )

    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(config.max_attempts),
        wait=_delay,
        retry=_should_retry,
        sleep=sleep,
        before_sleep=_log_retry,
        reraise=True,
    ):
        with attempt:
            return await operation()

    # Unreachable: AsyncRetrying either returns or raises
    raise AssertionError("Unreachable: AsyncRetrying exhausted without exception")
