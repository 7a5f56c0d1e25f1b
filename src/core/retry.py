# src/core/retry.py — v1
"""Bounded retry combinator shared by authentication and quota recovery.

A RetryPolicy states how many attempts are allowed, how long to wait before
the next one (fixed schedule or computed from the failure) and which
failures are worth retrying at all. An optional on_retry hook runs between
attempts; quota recovery uses it to reclaim channels before redeploying.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Sequence, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")

BackoffFn = Callable[[int, BaseException], float]
Backoff = Union[Sequence[float], BackoffFn]


class RetryExhausted(Exception):
    """All attempts allowed by a RetryPolicy failed."""

    def __init__(self, operation: str, attempts: int, last_error: BaseException):
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"'{operation}' failed after {attempts} attempts: {last_error}"
        )


def _always(_: BaseException) -> bool:
    return True


@dataclass(frozen=True)
class RetryPolicy:
    """Retry budget for one operation.

    Attributes:
        max_attempts: Total attempts including the first one.
        backoff: Delays in seconds indexed by failed attempt (last value
            repeats), or a callable (attempt, error) -> seconds.
        is_retryable: Predicate; non-retryable errors propagate immediately.
    """

    max_attempts: int
    backoff: Backoff = (0.0,)
    is_retryable: Callable[[BaseException], bool] = field(default=_always)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    def delay_for(self, attempt: int, error: BaseException) -> float:
        """Delay before the attempt following `attempt` (1-based)."""
        if callable(self.backoff):
            return max(0.0, float(self.backoff(attempt, error)))
        schedule = list(self.backoff) or [0.0]
        return max(0.0, float(schedule[min(attempt - 1, len(schedule) - 1)]))


async def with_retry(
    operation: Callable[[int], Awaitable[T]],
    policy: RetryPolicy,
    *,
    name: str = "operation",
    on_retry: Callable[[int, BaseException], Awaitable[None]] | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run `operation(attempt)` until it succeeds or the policy gives up.

    Raises:
        RetryExhausted: The last allowed attempt failed with a retryable error.
        Exception: Any non-retryable error, unchanged.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation(attempt)
        except Exception as e:
            if not policy.is_retryable(e):
                raise
            if attempt >= policy.max_attempts:
                raise RetryExhausted(name, attempt, e) from e

            delay = policy.delay_for(attempt, e)
            logger.warning(
                "'%s' failed (attempt %d/%d): %s — retrying in %.1fs",
                name, attempt, policy.max_attempts, e, delay,
            )
            if delay > 0:
                await sleep(delay)
            if on_retry is not None:
                await on_retry(attempt, e)
