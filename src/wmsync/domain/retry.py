"""Bounded retry-with-timeout combinator.

The policy is independent of what it wraps: identity probes, lookups or any other
idempotent read can be run through ``retry_with_timeout``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

log = getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ProbePolicy:
    max_attempts: int = 3
    per_attempt_timeout: float = 3.0
    backoff: float = 0.5
    max_backoff: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.per_attempt_timeout <= 0:
            raise ValueError("per_attempt_timeout must be positive")
        if self.backoff < 0 or self.max_backoff < 0:
            raise ValueError("backoff values must be non-negative")

    def backoff_waits(self) -> tuple[float, ...]:
        """Sleep inserted before each retry, mirroring ``wait_exponential``."""
        return tuple(
            min(self.backoff * 2**attempt, self.max_backoff)
            for attempt in range(self.max_attempts - 1)
        )

    def budget(self) -> float:
        """Upper bound in seconds for one operation run under this policy."""
        return self.max_attempts * self.per_attempt_timeout + sum(self.backoff_waits())


class RetriesExhaustedError(RuntimeError):
    """Raised when every attempt allowed by a policy failed or timed out."""

    def __init__(self, name: str, *, attempts: int, last_error: BaseException | None) -> None:
        super().__init__(f"{name} failed after {attempts} attempt(s): {last_error!r}")
        self.name = name
        self.attempts = attempts
        self.last_error = last_error


async def retry_with_timeout[T](
    policy: ProbePolicy,
    operation: Callable[[], Awaitable[T]],
    *,
    name: str,
    retry_on: tuple[type[BaseException], ...] = (TimeoutError,),
) -> T:
    """Run ``operation`` under ``policy``; raise ``RetriesExhaustedError`` when it gives up.

    Each attempt is bounded by ``policy.per_attempt_timeout``; a timed-out attempt
    counts as a failure like any exception listed in ``retry_on``. Exceptions outside
    ``retry_on`` propagate immediately.
    """

    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=wait_exponential(multiplier=policy.backoff, max=policy.max_backoff),
        retry=retry_if_exception_type((TimeoutError, *retry_on)),
        before_sleep=before_sleep_log(log, logging.WARNING),
        reraise=False,
    )
    try:
        async for attempt in retrying:
            with attempt:
                async with asyncio.timeout(policy.per_attempt_timeout):
                    result = await operation()
    except RetryError as exc:
        last = exc.last_attempt
        raise RetriesExhaustedError(
            name,
            attempts=last.attempt_number,
            last_error=last.exception(),
        ) from last.exception()
    return result
