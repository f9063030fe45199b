"""Retry policy for completion calls.

Retries up to ``max_retries`` times with exponential backoff. Only the TLDR
stage is configured with a non-zero budget by default; every other stage
absorbs failures with a fallback instead.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from analysis_engine.core.config import Settings
from analysis_engine.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 0
    initial_delay: float = 1.0
    backoff_factor: float = 2.0
    retry_on: tuple[type[BaseException], ...] = (Exception,)

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after the given 0-based failed attempt."""
        return self.initial_delay * (self.backoff_factor**attempt)

    async def run(self, func: Callable[[], Awaitable[T]], *, label: str = "call") -> T:
        """
        Await ``func()`` until it succeeds or the retry budget is spent.

        Raises:
            The last exception raised by ``func`` once every attempt failed
        """
        for attempt in range(self.max_retries + 1):
            try:
                return await func()
            except self.retry_on as e:
                if attempt < self.max_retries:
                    delay = self.delay_for(attempt)
                    logger.warning(
                        f"{label} attempt {attempt + 1}/{self.max_attempts} failed "
                        f"({type(e).__name__}), retrying in {delay}s"
                    )
                    await asyncio.sleep(delay)
                else:
                    logger.error(f"{label} failed after {self.max_attempts} attempt(s): {e}")
                    raise

        raise RuntimeError("unreachable")  # loop always returns or raises


NO_RETRY = RetryPolicy(max_retries=0)


def tldr_retry_policy(settings: Settings) -> RetryPolicy:
    """Retry policy for the TLDR stage, the only stage whose failure is fatal."""
    return RetryPolicy(
        max_retries=settings.TLDR_MAX_RETRIES,
        initial_delay=settings.TLDR_RETRY_INITIAL_DELAY,
    )
