"""Retry and timeout helpers.

with_retry re-runs a fallible coroutine with a fixed delay between attempts.
with_timeout races an awaitable against a deadline and turns the deadline
into CDPTimeoutError.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from .exceptions import CDPTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_RETRY_DELAY = 1.0
DEFAULT_TIMEOUT = 5.0


@dataclass(frozen=True)
class RetryPolicy:
    """How hard connect() tries before giving up.

    Attributes:
        max_attempts: Total number of attempts (>= 1)
        retry_delay: Seconds to sleep between attempts
        timeout: Deadline in seconds for a single attempt
    """

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    retry_delay: float = DEFAULT_RETRY_DELAY
    timeout: Optional[float] = DEFAULT_TIMEOUT

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.retry_delay < 0:
            raise ValueError(f"retry_delay must be >= 0, got {self.retry_delay}")


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    retry_delay: float = DEFAULT_RETRY_DELAY,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    description: str = "operation",
) -> T:
    """Await operation() until it succeeds or attempts run out.

    Args:
        operation: Zero-argument callable returning a fresh awaitable per attempt
        max_attempts: Maximum number of attempts (>= 1)
        retry_delay: Seconds to wait between attempts
        retry_on: Exception types that trigger another attempt
        description: Label used in log messages

    Returns:
        Result of the first successful attempt

    Raises:
        The exception of the last attempt once all attempts failed.
        Exceptions not listed in retry_on propagate immediately.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

    last_error: Optional[BaseException] = None
    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except retry_on as e:
            last_error = e
            if attempt == max_attempts:
                break
            logger.warning(
                f"{description} failed (attempt {attempt}/{max_attempts}): {e}; "
                f"retrying in {retry_delay}s"
            )
            await asyncio.sleep(retry_delay)

    logger.error(f"{description} failed after {max_attempts} attempts: {last_error}")
    raise last_error


async def with_timeout(
    awaitable: Awaitable[T],
    timeout: Optional[float],
    *,
    message: str = "Operation timed out",
    command_method: Optional[str] = None,
) -> T:
    """Await with a deadline.

    The awaitable is cancelled when the deadline wins, so a result produced
    afterwards is never delivered.

    Raises:
        CDPTimeoutError: If timeout seconds elapse first
    """
    if timeout is None:
        return await awaitable

    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as e:
        raise CDPTimeoutError(
            message, command_method=command_method, timeout=timeout
        ) from e

