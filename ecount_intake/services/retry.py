"""Retry policy for idempotent external calls."""

from __future__ import annotations
import asyncio
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, TypeVar

from loguru import logger

from ..errors import IntakeError, UpstreamError, UpstreamTimeoutError

T = TypeVar("T")


def _transient(exc: BaseException) -> bool:
    # Only transport-level failures; a vendor that answered is not retried.
    return isinstance(exc, UpstreamTimeoutError) or (
        type(exc) is UpstreamError and exc.status is None
    )


@dataclass
class RetryPolicy:
    """Exponential backoff with jitter.

    ``max_attempts=1`` disables retries. The delay before attempt ``n`` (1-based,
    n >= 2) is ``min(max_delay, base_delay * 2 ** (n - 2))`` plus up to
    ``jitter`` of that value.
    """
    max_attempts: int = 1
    base_delay: float = 0.5
    max_delay: float = 8.0
    jitter: float = 0.1
    should_retry: Callable[[BaseException], bool] = field(default=_transient, repr=False)
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def delay_for(self, attempt: int) -> float:
        base = min(self.max_delay, self.base_delay * (2 ** max(attempt - 2, 0)))
        return base + random.uniform(0, base * self.jitter)

    async def run(self, call: Callable[[], Awaitable[T]], description: str = "call") -> T:
        last_error: Optional[IntakeError] = None
        for attempt in range(1, self.max_attempts + 1):
            if attempt > 1:
                delay = self.delay_for(attempt)
                logger.warning("Retrying {} (attempt {}/{}) in {:.2f}s: {}",
                               description, attempt, self.max_attempts, delay, last_error)
                await self.sleep(delay)
            try:
                return await call()
            except IntakeError as exc:
                if attempt >= self.max_attempts or not self.should_retry(exc):
                    raise
                last_error = exc
        raise last_error  # pragma: no cover


NO_RETRY = RetryPolicy(max_attempts=1)
