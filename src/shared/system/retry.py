"""
Bounded Retry
=============
The single retry loop used by the quote, build, execute and bundle stages
and by the relay client.

Usage:
    policy = RetryPolicy(max_attempts=20, delay_sec=0.5)
    quote = await retry_async(fetch_quote, policy, "QUOTE", retry_on=(httpx.HTTPError,))
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from src.shared.system.logging import Logger

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt ceiling plus delay strategy (fixed when backoff == 1.0)."""

    max_attempts: int = 3
    delay_sec: float = 0.5
    backoff: float = 1.0
    max_delay_sec: float = 10.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.delay_sec < 0 or self.backoff < 1.0:
            raise ValueError("delay_sec must be >= 0 and backoff >= 1.0")

    def delay_for(self, attempt: int) -> float:
        """Delay after the given 1-based failed attempt."""
        return min(self.delay_sec * (self.backoff ** (attempt - 1)), self.max_delay_sec)


class RetryExhausted(Exception):
    """Every attempt failed. `last_error` holds the final cause."""

    def __init__(self, label: str, attempts: int, last_error: BaseException):
        super().__init__(f"{label} failed after {attempts} attempt(s): {last_error}")
        self.label = label
        self.attempts = attempts
        self.last_error = last_error


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    label: str,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    should_retry: Optional[Callable[[BaseException], bool]] = None,
) -> T:
    """
    Run `operation` until it returns or the policy is exhausted.

    Exceptions outside `retry_on` propagate untouched. For exceptions inside
    it, `should_retry` returning False re-raises at once.
    """
    last_error: Optional[BaseException] = None

    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await operation()
        except retry_on as e:
            if should_retry is not None and not should_retry(e):
                raise
            last_error = e
            Logger.warning(f"[RETRY] {label} attempt {attempt}/{policy.max_attempts} failed: {e}")
            if attempt < policy.max_attempts:
                delay = policy.delay_for(attempt)
                if delay > 0:
                    await asyncio.sleep(delay)

    raise RetryExhausted(label, policy.max_attempts, last_error) from last_error
