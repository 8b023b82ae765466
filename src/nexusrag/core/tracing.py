"""
Local observability: spans written to the log and in-process counters.

No telemetry leaves the process.
"""

import time
from contextlib import contextmanager
from typing import Dict, Any, Optional, Iterator

from nexusrag.core.logging import AsyncLogger
from nexusrag.core.id_generator import generate_id


class LocalTracer:
    """
    Span timing for individual operations.

    Usage:
    ```
    with tracer.span("hybrid_search", {"top_k": 5}):
        results = await engine.search(query)
    ```
    """

    def __init__(self, service_name: str = "nexusrag") -> None:
        self.service_name = service_name
        self.logger = AsyncLogger("tracing")

    @contextmanager
    def span(self, name: str, attributes: Optional[Dict[str, Any]] = None) -> Iterator[None]:
        span_id = generate_id()
        start = time.perf_counter()
        failed = False

        try:
            yield
        except Exception:
            failed = True
            raise
        finally:
            duration = time.perf_counter() - start
            self.logger.debug(
                f"Span completed: {name}",
                span_id=span_id,
                service=self.service_name,
                duration_ms=duration * 1000,
                failed=failed,
                **(attributes or {}),
            )


class MetricsCollector:
    """Counters kept in memory (searches, degraded legs, merges...)."""

    def __init__(self) -> None:
        self.metrics: Dict[str, float] = {}

    def increment(self, name: str, value: float = 1.0) -> None:
        self.metrics[name] = self.metrics.get(name, 0) + value

    def get_metrics(self) -> Dict[str, float]:
        return self.metrics.copy()

    def reset(self) -> None:
        self.metrics.clear()


tracer = LocalTracer()
metrics = MetricsCollector()
