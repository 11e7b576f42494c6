#!/usr/bin/env python3
"""Resilience Patterns for WardOps.

This module provides the retry primitives shared by the agent and the
infrastructure adapters:
    - Exponential backoff policy (pure delay computation)
    - Inline retry with exponential backoff
    - Sleeps that end early when a component shuts down
    - Timeout helper

The model fallback ladder drives its own retries through an explicit state
machine (see agent/orchestrator/model_ladder.py) and only borrows the
backoff policy and the interruptible sleep from here.

Example:
    policy = BackoffPolicy(initial_delay=1.0, backoff_factor=2.0)
    policy.delay_for(0)   # 1.0
    policy.delay_for(2)   # 4.0

    pool = await retry_async(create_pool, url, max_attempts=3)
"""
import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from .exceptions import DatabaseError, NetworkError, ServerError

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ============================================
# Exponential Backoff
# ============================================

DEFAULT_RETRYABLE_EXCEPTIONS = (
    NetworkError,
    ServerError,
    DatabaseError,
    asyncio.TimeoutError,
    ConnectionResetError,
    OSError,
)


@dataclass(frozen=True)
class BackoffPolicy:
    """Exponential backoff delays.

    Attributes:
        initial_delay: Delay before the first retry, in seconds
        backoff_factor: Multiplier applied for every further retry
        max_delay: Upper bound for any single delay
        jitter: Scale each delay by a random factor in [0.5, 1.5)
    """

    initial_delay: float = 1.0
    backoff_factor: float = 2.0
    max_delay: float = 30.0
    jitter: bool = False

    def delay_for(self, retry_number: int) -> float:
        """Delay before retry ``retry_number`` (0-based)."""
        delay = self.initial_delay * (self.backoff_factor ** max(retry_number, 0))
        delay = min(delay, self.max_delay)
        if self.jitter:
            delay = min(delay * (0.5 + random.random()), self.max_delay)
        return delay


async def retry_async(
    func: Callable[..., Awaitable[T]],
    *args,
    max_attempts: int = 3,
    policy: Optional[BackoffPolicy] = None,
    retryable_exceptions: tuple = DEFAULT_RETRYABLE_EXCEPTIONS,
    **kwargs,
) -> T:
    """Retry an async function call with exponential backoff.

    Args:
        func: Async function to call
        *args: Arguments to pass to func
        max_attempts: Maximum attempts (including the first)
        policy: Backoff policy, defaults to BackoffPolicy()
        retryable_exceptions: Exceptions to retry on
        **kwargs: Keyword arguments to pass to func

    Returns:
        Result from func

    Example:
        pool = await retry_async(
            create_pool,
            settings.database_url,
            max_attempts=3,
        )
    """
    policy = policy or BackoffPolicy()

    for attempt in range(1, max_attempts + 1):
        try:
            return await func(*args, **kwargs)
        except retryable_exceptions as e:
            if attempt >= max_attempts:
                raise
            delay = policy.delay_for(attempt - 1)
            logger.warning(
                f"Retry {attempt}/{max_attempts}: {e}. Waiting {delay:.1f}s"
            )
            await asyncio.sleep(delay)

    raise RuntimeError("Retry logic error")


# ============================================
# Cancellation-aware Helpers
# ============================================

async def interruptible_sleep(delay: float, stop_event: asyncio.Event) -> bool:
    """Sleep for ``delay`` seconds unless ``stop_event`` is set first.

    Returns:
        True if the full delay elapsed, False if the sleep was interrupted
    """
    if stop_event.is_set():
        return False
    if delay <= 0:
        return True
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return True
    return False


async def with_timeout(
    func: Callable[..., Awaitable[T]],
    timeout_seconds: float,
    *args,
    default: Optional[T] = None,
    raise_on_timeout: bool = True,
    **kwargs,
) -> Optional[T]:
    """Execute async function with timeout.

    Args:
        func: Async function to execute
        timeout_seconds: Maximum execution time in seconds
        *args: Arguments for func
        default: Value to return on timeout (if raise_on_timeout=False)
        raise_on_timeout: Whether to raise TimeoutError on timeout
        **kwargs: Keyword arguments for func

    Returns:
        Result from func, or default on timeout

    Raises:
        asyncio.TimeoutError: If timeout occurs and raise_on_timeout=True
    """
    try:
        return await asyncio.wait_for(
            func(*args, **kwargs),
            timeout=timeout_seconds,
        )
    except asyncio.TimeoutError:
        if raise_on_timeout:
            raise
        logger.warning(f"Function timed out after {timeout_seconds}s, returning default")
        return default


__all__ = [
    "DEFAULT_RETRYABLE_EXCEPTIONS",
    "BackoffPolicy",
    "retry_async",
    "interruptible_sleep",
    "with_timeout",
]
