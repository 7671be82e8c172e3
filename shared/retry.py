"""
Retry for transient issuer transport failures.

Only exponential backoff is supported; the issuer is called rarely
enough that anything fancier buys nothing.
"""

import asyncio
import functools
import random
from dataclasses import dataclass
from typing import Any, Callable, Awaitable, Dict, Optional, Tuple, Type

from shared.logging import get_logger


@dataclass(frozen=True)
class RetryConfig:
    """Backoff settings: ``base_delay * 2 ** (attempt - 1)``, capped, with 10% jitter."""

    max_attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 5.0
    jitter: bool = True

    def delay_for(self, attempt: int) -> float:
        delay = min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)
        if self.jitter:
            delay += random.uniform(-delay * 0.1, delay * 0.1)
        return max(0.0, delay)


class RetryError(Exception):
    """Raised when every attempt failed; wraps the last failure."""

    def __init__(self, message: str, last_exception: Exception, attempts: int):
        super().__init__(message)
        self.last_exception = last_exception
        self.attempts = attempts


def retry_on_exception(
    exceptions: Tuple[Type[BaseException], ...],
    config: Optional[RetryConfig] = None,
    context: Optional[Callable[..., Dict[str, Any]]] = None,
) -> Callable:
    """Retry an async call on ``exceptions``.

    ``context`` receives the call's arguments and returns extra fields
    for the retry log lines (the issuer passes the request path).
    """
    config = config or RetryConfig()

    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        logger = get_logger(f"retry.{func.__name__}")

        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            fields = context(*args, **kwargs) if context else {}

            for attempt in range(1, config.max_attempts + 1):
                try:
                    result = await func(*args, **kwargs)
                except exceptions as e:
                    if attempt == config.max_attempts:
                        logger.error("All retry attempts exhausted", attempts=attempt, error=str(e), **fields)
                        raise RetryError(
                            f"{func.__name__} failed after {attempt} attempts",
                            last_exception=e,
                            attempts=attempt
                        ) from e

                    delay = config.delay_for(attempt)
                    logger.warning("Transient failure, retrying", attempt=attempt, delay=delay, error=str(e), **fields)
                    await asyncio.sleep(delay)
                    continue

                if attempt > 1:
                    logger.info("Retry succeeded", attempt=attempt, **fields)
                return result

        return wrapper

    return decorator
