from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from app.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryExhaustedError(Exception):
    def __init__(self, attempts: int, last_error: Exception) -> None:
        super().__init__(f"gave up after {attempts} attempt(s): {last_error}")
        self.attempts = attempts
        self.last_error = last_error


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry with exponential backoff: base, 2*base, 4*base, ..."""

    max_attempts: int = 3
    base_delay: float = 1.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must not be negative")

    @classmethod
    def from_settings(cls) -> RetryPolicy:
        return cls(max_attempts=settings.chat_max_attempts, base_delay=settings.chat_backoff_base_s)

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
        return self.base_delay * 2 ** (attempt - 1)

    async def run(
        self,
        operation: Callable[[int], Awaitable[T]],
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_retry: Callable[[int, Exception, float], None] | None = None,
    ) -> T:
        """Call ``operation(attempt)`` until it succeeds or attempts run out.

        Any Exception counts as a failure. CancelledError is a BaseException and
        therefore stops the loop immediately without a retry.
        """
        attempt = 1
        while True:
            try:
                return await operation(attempt)
            except Exception as exc:
                if attempt >= self.max_attempts:
                    raise RetryExhaustedError(attempt, exc) from exc
                delay = self.delay_for(attempt)
                logger.warning(
                    "retry.scheduled",
                    extra={"attempt": attempt, "delay_s": delay, "error": str(exc)},
                )
                if on_retry is not None:
                    on_retry(attempt, exc, delay)
                await sleep(delay)
            attempt += 1
