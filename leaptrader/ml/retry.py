"""Exponential backoff for calls to the remote ML service."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, TypeVar

from leaptrader.errors import MLServiceError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryableMLError(MLServiceError):
    """A transient failure (5xx, 429, timeout) that may succeed on retry."""

    def __init__(self, message: str, status_code: Optional[int] = None, retry_after: Optional[float] = None) -> None:
        super().__init__(message, status_code=status_code)
        self.retry_after = retry_after


@dataclass
class RetryPolicy:
    """Backoff schedule: ``min(max_delay, 2**attempt * base_delay + jitter)``.

    ``attempt`` starts at 1, so with the defaults the retries wait roughly
    1 s, 2 s and 4 s. A rate-limited response waits for its ``Retry-After``
    (``default_retry_after`` seconds when the header is missing) instead.
    """

    base_delay_ms: float = 500.0
    max_delay_ms: float = 16000.0
    max_retries: int = 3
    jitter_ms: float = 300.0
    default_retry_after: float = 2.0
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False)
    rng: Callable[[], float] = field(default=random.random, repr=False)

    def backoff_delay(self, attempt: int) -> float:
        """Seconds to wait before retry number ``attempt`` (1-based)."""

        delay_ms = (2**attempt) * self.base_delay_ms + self.rng() * self.jitter_ms
        return min(self.max_delay_ms, delay_ms) / 1000.0

    def delay_for(self, error: RetryableMLError, attempt: int) -> float:
        if error.status_code == 429:
            return error.retry_after if error.retry_after and error.retry_after > 0 else self.default_retry_after
        return self.backoff_delay(attempt)

    async def execute(self, operation: Callable[[], Awaitable[T]], description: str = "ML request") -> T:
        attempt = 0
        while True:
            try:
                return await operation()
            except RetryableMLError as exc:
                attempt += 1
                if attempt > self.max_retries:
                    logger.error(f"{description} failed after {self.max_retries} retries: {exc}")
                    raise
                delay = self.delay_for(exc, attempt)
                logger.warning(f"Retrying {description} (attempt {attempt}/{self.max_retries}) in {delay:.2f}s: {exc}")
                await self.sleep(delay)


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return seconds if seconds > 0 else None


__all__ = ["RetryPolicy", "RetryableMLError", "parse_retry_after"]
