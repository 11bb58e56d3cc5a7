"""Exponential backoff for calls to external services."""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

import structlog

from hostguard.errors import TransientExternalError


logger = structlog.get_logger()

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff."""
    max_attempts: int = 4
    initial_delay: float = 2.0
    multiplier: float = 2.0
    max_delay: float = 30.0

    @classmethod
    def from_config(cls, config) -> "RetryPolicy":
        return cls(
            max_attempts=config.max_attempts,
            initial_delay=config.initial_delay,
            multiplier=config.multiplier,
            max_delay=config.max_delay,
        )

    def delay_for(self, attempt: int) -> float:
        """Delay after the given (1-based) failed attempt."""
        return min(self.initial_delay * (self.multiplier ** (attempt - 1)), self.max_delay)


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    retry_on: Tuple[Type[BaseException], ...] = (TransientExternalError,),
    description: str = "operation",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run *operation* until it succeeds or attempts are exhausted.

    Only exceptions in *retry_on* are retried; anything else propagates
    at once. There is no sleep after the final attempt, whose error is
    re-raised.
    """
    policy = policy or RetryPolicy()
    attempt = 1
    while True:
        try:
            return await operation()
        except retry_on as e:
            if attempt >= policy.max_attempts:
                logger.error(
                    "Retries exhausted",
                    operation=description,
                    attempts=attempt,
                    error=str(e),
                )
                raise
            delay = policy.delay_for(attempt)
            logger.warning(
                "Attempt failed, retrying",
                operation=description,
                attempt=attempt,
                max_attempts=policy.max_attempts,
                delay=delay,
                error=str(e),
            )
            await sleep(delay)
            attempt += 1


def is_retryable_status(status: int) -> bool:
    """HTTP statuses worth retrying: 429 and any 5xx."""
    return status == 429 or status >= 500
