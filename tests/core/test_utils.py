"""
Tests for retry_async, KeyedLock, and generate_id.
"""

import asyncio
import re

import pytest

from nexusrag.core.id_generator import generate_id
from nexusrag.core.utils.locks import KeyedLock
from nexusrag.core.utils.retry import compute_delay, retry_async


class TestRetry:
    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        attempts = []

        async def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise ConnectionError("reset")
            return "done"

        result = await retry_async(flaky, max_attempts=3, initial_delay=0)

        assert result == "done"
        assert len(attempts) == 3

    @pytest.mark.asyncio
    async def test_raises_last_error_when_exhausted(self):
        async def always_fails():
            raise ConnectionError("reset")

        with pytest.raises(ConnectionError):
            await retry_async(always_fails, max_attempts=2, initial_delay=0)

    @pytest.mark.asyncio
    async def test_should_retry_false_stops_immediately(self):
        attempts = []

        async def client_error():
            attempts.append(1)
            raise ValueError("bad request")

        with pytest.raises(ValueError):
            await retry_async(
                client_error, max_attempts=5, initial_delay=0, should_retry=lambda e: False
            )

        assert len(attempts) == 1

    @pytest.mark.asyncio
    async def test_unlisted_errors_are_not_retried(self):
        attempts = []

        async def other_error():
            attempts.append(1)
            raise KeyError("x")

        with pytest.raises(KeyError):
            await retry_async(other_error, max_attempts=3, initial_delay=0, retry_on=(ConnectionError,))

        assert len(attempts) == 1

    def test_compute_delay(self):
        assert compute_delay(0, "exponential", 0.5) == 0.5
        assert compute_delay(3, "exponential", 0.5) == 4.0
        assert compute_delay(10, "exponential", 0.5, max_delay=30) == 30
        assert compute_delay(2, "linear", 1.0) == 3.0
        assert compute_delay(5, "constant", 1.0) == 1.0


class TestKeyedLock:
    @pytest.mark.asyncio
    async def test_same_key_is_serialized(self):
        locks = KeyedLock()
        order = []

        async def worker(name):
            async with locks.acquire("source-1"):
                order.append(f"{name}-start")
                await asyncio.sleep(0.01)
                order.append(f"{name}-end")

        await asyncio.gather(worker("a"), worker("b"))

        assert order == ["a-start", "a-end", "b-start", "b-end"]

    @pytest.mark.asyncio
    async def test_different_keys_run_concurrently(self):
        locks = KeyedLock()
        order = []

        async def worker(key):
            async with locks.acquire(key):
                order.append(f"{key}-start")
                await asyncio.sleep(0.01)
                order.append(f"{key}-end")

        await asyncio.gather(worker("x"), worker("y"))

        assert order[:2] == ["x-start", "y-start"]

    @pytest.mark.asyncio
    async def test_entries_are_released(self):
        locks = KeyedLock()

        async with locks.acquire("k"):
            assert len(locks) == 1

        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_released_after_exception(self):
        locks = KeyedLock()

        with pytest.raises(RuntimeError):
            async with locks.acquire("k"):
                raise RuntimeError("fail")

        assert len(locks) == 0


def test_generate_id_is_hex32_and_unique():
    ids = {generate_id() for _ in range(100)}

    assert len(ids) == 100
    assert all(re.fullmatch(r"[0-9a-f]{32}", value) for value in ids)
