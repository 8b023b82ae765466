"""
Circuit breaker for external provider calls.

States:
- closed: calls pass through, consecutive failures are counted
- open: calls are rejected with CircuitOpenError until the retry window elapses
- half-open: trial calls pass through, enough successes close the circuit
"""

import asyncio
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from nexusrag.core.exceptions import CircuitOpenError
from nexusrag.core.logging import AsyncLogger

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


class CircuitBreaker:
    """
    Async call guard shared by every component that talks to one provider.

    The lock only protects state transitions; the wrapped call runs outside it
    so a slow provider does not serialize callers.

    Usage:
    ```
    breaker = CircuitBreaker("embeddings", failure_threshold=5, success_threshold=2, timeout=30.0)
    vectors = await breaker.call(lambda: provider.embed_batch(texts), call_timeout=10.0)
    ```
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        success_threshold: int = 2,
        timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
        on_open: Optional[Callable[[str], None]] = None,
        on_close: Optional[Callable[[str], None]] = None,
    ) -> None:
        if failure_threshold < 1 or success_threshold < 1:
            raise ValueError("Breaker thresholds must be at least 1")
        if timeout <= 0:
            raise ValueError("Breaker timeout must be positive")

        self.name = name
        self.failure_threshold = failure_threshold
        self.success_threshold = success_threshold
        self.timeout = timeout
        self._clock = clock
        self._on_open = on_open
        self._on_close = on_close

        self._state = CircuitState.CLOSED
        self._failures = 0
        self._successes = 0
        self._next_attempt = 0.0
        self._lock = asyncio.Lock()
        self.logger = AsyncLogger("circuit_breaker")

    @property
    def state(self) -> CircuitState:
        return self._state

    async def call(
        self, func: Callable[[], Awaitable[T]], call_timeout: Optional[float] = None
    ) -> T:
        """
        Run func through the breaker.

        Raises:
            CircuitOpenError: Circuit is open and the retry window has not elapsed
            Exception: Whatever func raised, unchanged (asyncio.TimeoutError on timeout)
        """
        async with self._lock:
            if self._state == CircuitState.OPEN:
                if self._clock() < self._next_attempt:
                    raise CircuitOpenError(
                        f"Circuit '{self.name}' is open",
                        context={
                            "breaker": self.name,
                            "retry_in_seconds": round(self._next_attempt - self._clock(), 3),
                        },
                    )
                self._state = CircuitState.HALF_OPEN
                self._successes = 0
                self.logger.info("Circuit half-open", breaker=self.name)

        try:
            if call_timeout is not None:
                result = await asyncio.wait_for(func(), timeout=call_timeout)
            else:
                result = await func()
        except Exception:
            await self._record_failure()
            raise

        await self._record_success()
        return result

    async def _record_success(self) -> None:
        closed = False
        async with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._successes += 1
                if self._successes >= self.success_threshold:
                    self._state = CircuitState.CLOSED
                    self._failures = 0
                    self._successes = 0
                    closed = True
            else:
                self._failures = 0

        if closed:
            self.logger.info("Circuit closed", breaker=self.name)
            if self._on_close:
                self._on_close(self.name)

    async def _record_failure(self) -> None:
        opened = False
        async with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._trip()
                opened = True
            elif self._state == CircuitState.CLOSED:
                self._failures += 1
                if self._failures >= self.failure_threshold:
                    self._trip()
                    opened = True

        if opened:
            self.logger.warning(
                "Circuit opened", breaker=self.name, retry_after_seconds=self.timeout
            )
            if self._on_open:
                self._on_open(self.name)

    def _trip(self) -> None:
        self._state = CircuitState.OPEN
        self._next_attempt = self._clock() + self.timeout
        self._successes = 0

    def get_status(self) -> Dict[str, Any]:
        status: Dict[str, Any] = {
            "name": self.name,
            "state": self._state.value,
            "failures": self._failures,
            "successes": self._successes,
        }
        if self._state == CircuitState.OPEN:
            status["retry_in_seconds"] = max(0.0, self._next_attempt - self._clock())
        return status

    def reset(self) -> None:
        """Force the breaker back to closed."""
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._successes = 0
        self._next_attempt = 0.0
