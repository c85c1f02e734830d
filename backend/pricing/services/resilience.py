"""Retry with exponential backoff and per-attempt timeouts for upstream calls."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from .errors import APITimeoutError, MaxRetriesExceeded

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """Backoff parameters. Delays are in seconds."""
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    multiplier: float = 2.0

    def delay_for(self, attempt: int) -> float:
        """Delay before the retry that follows the given (1-based) failed attempt."""
        return min(self.base_delay * (self.multiplier ** (attempt - 1)), self.max_delay)


def is_retryable(error: BaseException) -> bool:
    """Errors without a retryable flag (plain exceptions) are retried."""
    return getattr(error, "retryable", True)


async def execute_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    symbol: Optional[str] = None,
    operation_type: str = "price fetch",
) -> T:
    """Execute an async operation, retrying retryable failures.

    Args:
        operation: Zero-argument coroutine function
        policy: Backoff parameters; defaults to RetryPolicy()
        symbol: Symbol for log messages and the terminal error
        operation_type: Label for log messages

    Returns:
        The result of the first successful attempt

    Raises:
        PricingError: The first non-retryable error, unchanged
        MaxRetriesExceeded: After policy.max_retries failed attempts
    """
    policy = policy or RetryPolicy()
    last_error: Optional[BaseException] = None

    for attempt in range(1, policy.max_retries + 1):
        try:
            return await operation()
        except Exception as e:
            last_error = e

            if not is_retryable(e):
                raise

            if attempt >= policy.max_retries:
                break

            delay = policy.delay_for(attempt)
            logger.warning(
                f"{operation_type} attempt {attempt}/{policy.max_retries} failed for "
                f"{symbol or 'unknown'}: {e}. Retrying in {delay:.2f}s..."
            )
            await asyncio.sleep(delay)

    suffix = f" for {symbol}" if symbol else ""
    raise MaxRetriesExceeded(
        f"{operation_type} failed after {policy.max_retries} attempts{suffix}",
        attempts=policy.max_retries,
        symbol=symbol,
        original_error=last_error,
    )


async def execute_with_timeout(
    operation: Callable[[], Awaitable[T]],
    timeout: float,
    operation_type: str = "API call",
) -> T:
    """Run an async operation with a deadline.

    The operation is cancelled on timeout and its result, if any, is dropped.

    Raises:
        APITimeoutError: If the deadline passes first
    """
    try:
        return await asyncio.wait_for(operation(), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise APITimeoutError(
            f"{operation_type} timed out after {timeout:g}s",
            original_error=e,
        ) from e


async def fetch_with_resilience(
    operation: Callable[[], Awaitable[Any]],
    policy: RetryPolicy,
    timeout: float,
    symbol: Optional[str] = None,
    operation_type: str = "price fetch",
) -> Any:
    """Retry around a time-bounded attempt: every attempt gets its own deadline."""
    return await execute_with_retry(
        lambda: execute_with_timeout(operation, timeout, operation_type),
        policy=policy,
        symbol=symbol,
        operation_type=operation_type,
    )
