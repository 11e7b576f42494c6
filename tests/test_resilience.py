#!/usr/bin/env python3
"""Tests for resilience primitives.

Tests cover:
    - Backoff delay computation
    - Inline retry with backoff
    - Interruptible sleeps
    - Timeout helper
"""
import asyncio
from unittest.mock import AsyncMock

import pytest

from src.wardops.api.exceptions import ClientRequestError, NetworkError, ServerError
from src.wardops.api.resilience import (
    BackoffPolicy,
    interruptible_sleep,
    retry_async,
    with_timeout,
)


# ============================================
# Backoff Policy Tests
# ============================================

class TestBackoffPolicy:
    """Test exponential delay computation."""

    def test_doubles_each_retry(self):
        policy = BackoffPolicy(initial_delay=1.0, backoff_factor=2.0)
        assert [policy.delay_for(n) for n in range(4)] == [1.0, 2.0, 4.0, 8.0]

    def test_capped_at_max_delay(self):
        policy = BackoffPolicy(initial_delay=1.0, backoff_factor=2.0, max_delay=5.0)
        assert policy.delay_for(10) == 5.0

    def test_negative_retry_number_uses_initial_delay(self):
        assert BackoffPolicy(initial_delay=0.5).delay_for(-1) == 0.5

    def test_jitter_stays_in_range(self):
        policy = BackoffPolicy(initial_delay=2.0, jitter=True)
        for _ in range(20):
            assert 1.0 <= policy.delay_for(0) < 3.0

    def test_zero_delay(self):
        assert BackoffPolicy(initial_delay=0.0).delay_for(3) == 0.0


# ============================================
# Retry Tests
# ============================================

class TestRetryAsync:
    """Test inline retry behavior."""

    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failures(self):
        func = AsyncMock(side_effect=[ServerError("boom"), NetworkError("down"), "ok"])

        policy = BackoffPolicy(initial_delay=0.001)

        result = await retry_async(func, "arg", max_attempts=3, policy=policy)

        assert result == "ok"
        assert func.await_count == 3
        func.assert_awaited_with("arg")

    @pytest.mark.asyncio
    async def test_raises_after_max_attempts(self):
        func = AsyncMock(side_effect=ServerError("boom"))
        policy = BackoffPolicy(initial_delay=0.0)

        with pytest.raises(ServerError):
            await retry_async(func, max_attempts=2, policy=policy)

        assert func.await_count == 2

    @pytest.mark.asyncio
    async def test_non_retryable_raises_immediately(self):
        func = AsyncMock(side_effect=ClientRequestError("bad request", status_code=400))

        with pytest.raises(ClientRequestError):
            await retry_async(func, max_attempts=5, policy=BackoffPolicy(initial_delay=0.0))

        assert func.await_count == 1


# ============================================
# Interruptible Sleep Tests
# ============================================

class TestInterruptibleSleep:
    """Test sleeps that end on shutdown."""

    @pytest.mark.asyncio
    async def test_full_delay_elapses(self):
        assert await interruptible_sleep(0.01, asyncio.Event()) is True

    @pytest.mark.asyncio
    async def test_already_set_returns_immediately(self):
        event = asyncio.Event()
        event.set()
        assert await interruptible_sleep(10.0, event) is False

    @pytest.mark.asyncio
    async def test_interrupted(self):
        event = asyncio.Event()
        asyncio.get_running_loop().call_later(0.01, event.set)

        assert await interruptible_sleep(10.0, event) is False

    @pytest.mark.asyncio
    async def test_zero_delay(self):
        assert await interruptible_sleep(0, asyncio.Event()) is True


# ============================================
# Timeout Tests
# ============================================

class TestWithTimeout:
    """Test the timeout helper."""

    @pytest.mark.asyncio
    async def test_returns_result(self):
        async def quick(value):
            return value * 2

        assert await with_timeout(quick, 1.0, 21) == 42

    @pytest.mark.asyncio
    async def test_raises_on_timeout(self):
        async def slow():
            await asyncio.sleep(1)

        with pytest.raises(asyncio.TimeoutError):
            await with_timeout(slow, 0.01)

    @pytest.mark.asyncio
    async def test_default_on_timeout(self):
        async def slow():
            await asyncio.sleep(1)

        result = await with_timeout(slow, 0.01, default="fallback", raise_on_timeout=False)
        assert result == "fallback"
