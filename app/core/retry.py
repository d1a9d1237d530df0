"""Bounded retry with exponential backoff for transient transport failures."""
import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = 2,
    initial_delay: float = 0.3,
    backoff_factor: float = 2.0,
    is_retryable: Optional[Callable[[BaseException], bool]] = None,
    label: str = "operation",
) -> T:
    """
    Run an async operation, retrying transient failures.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        max_retries: Retries after the first attempt
        initial_delay: Delay before the first retry, in seconds
        backoff_factor: Multiplier applied to the delay after each retry
        is_retryable: Predicate deciding whether an error is transient.
            Errors it rejects are raised immediately.
        label: Name used in log lines

    Returns:
        The operation's result

    Raises:
        The last error once retries are exhausted or a non-transient error occurs
    """
    delay = initial_delay
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as e:
            retryable = is_retryable(e) if is_retryable else True
            if attempt >= max_retries or not retryable:
                raise
            attempt += 1
            logger.warning(
                f"[RETRY] {label} failed ({type(e).__name__}: {e}), "
                f"attempt {attempt}/{max_retries} in {delay:.2f}s"
            )
            await asyncio.sleep(delay)
            delay *= backoff_factor
