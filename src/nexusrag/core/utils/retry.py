"""
Async retry with backoff for provider transport calls.

Only transport-level hiccups are retried here (connection resets, 5xx).
Store errors are never retried inside the core.
"""

from typing import TypeVar, Callable, Optional, Type, Tuple, Any, Awaitable
import asyncio

T = TypeVar('T')


def compute_delay(
    attempt: int, backoff: str = "exponential", initial_delay: float = 0.5, max_delay: float = 30.0
) -> float:
    """Delay before retry number `attempt + 1` (attempt is zero-based)."""
    if backoff == "exponential":
        return min(initial_delay * (2**attempt), max_delay)
    elif backoff == "linear":
        return min(initial_delay * (attempt + 1), max_delay)
    return min(initial_delay, max_delay)


async def retry_async(
    func: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    backoff: str = "exponential",
    initial_delay: float = 0.5,
    max_delay: float = 30.0,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    should_retry: Optional[Callable[[BaseException], bool]] = None,
    logger: Optional[Any] = None,
) -> T:
    """
    Retry an async callable with configurable backoff.

    Args:
        func: Zero-argument coroutine factory
        max_attempts: Maximum number of attempts (>= 1)
        backoff: "exponential", "linear", or "constant"
        initial_delay: Initial delay in seconds
        max_delay: Maximum delay between retries
        retry_on: Exception types that may be retried
        should_retry: Extra predicate; returning False re-raises immediately
        logger: Optional logger for retry attempts

    Returns:
        Result from the first successful call

    Raises:
        The last exception once attempts are exhausted
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for attempt in range(max_attempts):
        try:
            return await func()
        except retry_on as e:
            retryable = should_retry(e) if should_retry is not None else True
            if not retryable or attempt == max_attempts - 1:
                if logger and retryable:
                    logger.error("All retry attempts failed", attempts=max_attempts, error=str(e))
                raise

            delay = compute_delay(attempt, backoff, initial_delay, max_delay)
            if logger:
                logger.warning(
                    "Retry attempt failed",
                    attempt=attempt + 1,
                    max_attempts=max_attempts,
                    delay=delay,
                    error=str(e),
                )
            await asyncio.sleep(delay)

    raise RuntimeError("retry_async exhausted without result")
