"""
Retry mechanism for resilient operations.
"""

import asyncio
from typing import Any, Optional, Callable, Awaitable, Tuple, Type

from helpdesk_shared.logging import get_logger


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(self,
                 max_attempts: int = 4,
                 base_delay: float = 0.5,
                 max_delay: float = 60.0):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay


class RetryError(Exception):
    """Exception raised when all retry attempts are exhausted."""
    def __init__(self, message: str, last_exception: BaseException, attempts: int):
        super().__init__(message)
        self.last_exception = last_exception
        self.attempts = attempts


async def retry_async(func: Callable[[], Awaitable[Any]],
                      *,
                      exceptions: Tuple[Type[BaseException], ...] = (Exception,),
                      config: Optional[RetryConfig] = None,
                      name: str = "operation") -> Any:
    """Await ``func()`` until it succeeds or ``config.max_attempts`` is reached.

    Only ``exceptions`` are retried; anything else propagates immediately.
    Raises :class:`RetryError` wrapping the last exception on exhaustion.
    """
    if config is None:
        config = RetryConfig()

    logger = get_logger(f"portal.retry.{name}")

    for attempt in range(1, config.max_attempts + 1):
        try:
            result = await func()

            if attempt > 1:
                logger.info(
                    "Retry succeeded",
                    attempt=attempt,
                    operation=name
                )

            return result

        except exceptions as e:
            if attempt == config.max_attempts:
                logger.error(
                    "All retry attempts exhausted",
                    attempt=attempt,
                    max_attempts=config.max_attempts,
                    operation=name,
                    error=repr(e)
                )
                raise RetryError(
                    f"{name} failed after {config.max_attempts} attempts",
                    last_exception=e,
                    attempts=config.max_attempts
                ) from e

            delay = _calculate_delay(attempt, config)

            logger.warning(
                "Retry attempt failed, waiting before next attempt",
                attempt=attempt,
                delay=delay,
                operation=name,
                error=repr(e)
            )

            await asyncio.sleep(delay)

    raise AssertionError("unreachable")  # pragma: no cover


def _calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Fixed delay between attempts, capped at ``max_delay``."""
    return max(0.0, min(config.base_delay, config.max_delay))
