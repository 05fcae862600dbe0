"""
Resilience primitives for inference calls.

Provides a per-call timeout decorator and an async retry loop with
exponential backoff. The retry loop consults a ``should_retry`` predicate
so permanent failures (bad request, unknown model, authentication) are
surfaced immediately instead of being retried.

Example usage:

    from repo_condenser.core.resilience import RetryPolicy, retry_async

    policy = RetryPolicy(max_retries=3, initial_delay=1.0)
    result = await retry_async(lambda: provider.infer(system, user, options), policy)
"""

from dataclasses import dataclass
from functools import wraps
from typing import Any, Awaitable, Callable, Optional, TypeVar
import asyncio
import logging
import random

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Timeout
# ---------------------------------------------------------------------------


class TimeoutException(Exception):
    """Operation timed out.

    Timeouts are transient, so the exception is marked retryable.

    Attributes:
        timeout_seconds: The timeout duration that was exceeded.
        operation: Name of the operation that timed out.
    """

    retryable = True

    def __init__(
        self,
        message: str,
        timeout_seconds: Optional[float] = None,
        operation: Optional[str] = None,
    ):
        super().__init__(message)
        self.timeout_seconds = timeout_seconds
        self.operation = operation


async def call_with_timeout(
    awaitable: Awaitable[T],
    seconds: Optional[float],
    operation: str = "operation",
) -> T:
    """Await ``awaitable`` with an optional timeout.

    Args:
        awaitable: Coroutine or future to await.
        seconds: Timeout in seconds; ``None`` or <= 0 disables the limit.
        operation: Name used in the error message.

    Raises:
        TimeoutException: If the awaitable does not finish in time.
    """
    if not seconds or seconds <= 0:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError:
        raise TimeoutException(
            f"{operation} timed out after {seconds}s",
            timeout_seconds=seconds,
            operation=operation,
        )


def with_timeout(
    seconds: float,
    error_message: Optional[str] = None,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Decorator to add a timeout to async functions.

    Example:
        >>> @with_timeout(60, "Inference call timed out")
        ... async def infer(prompt: str):
        ...     return await client.complete(prompt)

    Raises:
        TimeoutException: If the operation exceeds the timeout.
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            try:
                return await asyncio.wait_for(func(*args, **kwargs), timeout=seconds)
            except asyncio.TimeoutError:
                msg = error_message or f"{func.__name__} timed out after {seconds}s"
                raise TimeoutException(msg, timeout_seconds=seconds, operation=func.__name__)

        return wrapper

    return decorator


# ---------------------------------------------------------------------------
# Retry with Backoff
# ---------------------------------------------------------------------------


def default_should_retry(error: BaseException) -> bool:
    """Retry unless the error declares itself permanent.

    Errors carrying a ``retryable`` attribute (``LLMError`` and its
    subclasses, ``TimeoutException``) are trusted; anything else is treated
    as transient.
    """
    return bool(getattr(error, "retryable", True))


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff parameters.

    The delay before retry ``n`` (0-based) is
    ``min(initial_delay * multiplier**n, max_delay)``.

    Attributes:
        max_retries: Retries after the first attempt (total attempts = max_retries + 1)
        initial_delay: Delay in seconds before the first retry
        multiplier: Growth factor applied after each retry
        max_delay: Cap on any single delay
        jitter: Scale each delay by a random factor in [0.5, 1.5)
    """

    max_retries: int = 3
    initial_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 30.0
    jitter: bool = False

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be non-negative, got {self.max_retries}")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("retry delays must be non-negative")
        if self.multiplier < 1:
            raise ValueError(f"multiplier must be >= 1, got {self.multiplier}")

    def delay_for(self, attempt: int) -> float:
        """Delay in seconds before retrying after failed attempt ``attempt``."""
        delay = min(self.initial_delay * (self.multiplier**attempt), self.max_delay)
        if self.jitter:
            delay = delay * (0.5 + random.random())
        return delay


async def retry_async(
    func: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    *,
    should_retry: Optional[Callable[[BaseException], bool]] = None,
    on_retry: Optional[Callable[[int, BaseException, float], None]] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """Await ``func()`` retrying failures with exponential backoff.

    Args:
        func: Zero-argument coroutine factory (use a lambda for arguments).
        policy: Backoff parameters (default RetryPolicy()).
        should_retry: Predicate deciding whether an error is transient
            (default: ``default_should_retry``).
        on_retry: Called with (attempt, error, delay) before each sleep.
        sleep: Awaitable sleep function, replaceable in tests.

    Returns:
        Result of the first successful attempt.

    Raises:
        Exception: The last error, once retries are exhausted or the
            predicate rejects it. Cancellation is never retried.
    """
    policy = policy or RetryPolicy()
    predicate = should_retry or default_should_retry

    attempt = 0
    while True:
        try:
            return await func()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if attempt >= policy.max_retries or not predicate(e):
                logger.debug(
                    f"Giving up after {attempt + 1} attempt(s): {type(e).__name__}: {e}"
                )
                raise
            delay = policy.delay_for(attempt)
            logger.warning(
                f"Attempt {attempt + 1}/{policy.max_retries + 1} failed "
                f"({type(e).__name__}: {e}); retrying in {delay:.2f}s"
            )
            if on_retry is not None:
                on_retry(attempt, e, delay)
            await sleep(delay)
            attempt += 1
