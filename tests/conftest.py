"""
Shared test fixtures for the whole suite.

Provides: in-memory store, fake embedding and language model providers,
a controllable clock, and ready-wired services.
"""

import os
import tempfile
import zlib
from pathlib import Path

# Keep the file sink out of the working tree; must run before nexusrag is imported
os.environ.setdefault(
    "NEXUSRAG_LOG_FILE", str(Path(tempfile.gettempdir()) / "nexusrag-tests" / "debug.log")
)

import asyncio  # noqa: E402
import re  # noqa: E402
from typing import Any, Dict, List, Optional, Sequence  # noqa: E402

import pytest  # noqa: E402

from nexusrag.core.circuit_breaker import CircuitBreaker  # noqa: E402
from nexusrag.core.database import DatabaseManager  # noqa: E402
from nexusrag.core.tracing import metrics  # noqa: E402
from nexusrag.embeddings.client import EmbeddingClient  # noqa: E402
from nexusrag.models.search import RerankScore  # noqa: E402
from nexusrag.rag.store.sqlite_store import SQLiteVectorStore  # noqa: E402

TEST_DIMENSION = 32

_WORD = re.compile(r"\w+")


def axis_vector(*components: float, dimension: int = TEST_DIMENSION) -> List[float]:
    """Leading components followed by zeros."""
    values = list(components) + [0.0] * (dimension - len(components))
    return values[:dimension]


class FakeEmbeddingProvider:
    """
    Deterministic bag-of-words embeddings.

    Each word adds 1.0 to the bucket crc32(word) % dimension. Exact texts in
    `overrides` get the given vector instead.
    """

    def __init__(self, dimension: int = TEST_DIMENSION, overrides: Optional[Dict[str, List[float]]] = None):
        self.dimension = dimension
        self.overrides: Dict[str, List[float]] = dict(overrides or {})
        self.fail_with: Optional[BaseException] = None
        self.delay: float = 0.0
        self.calls: List[List[str]] = []

    def vector_for(self, text: str) -> List[float]:
        if text in self.overrides:
            return list(self.overrides[text])
        values = [0.0] * self.dimension
        for word in _WORD.findall(text.lower()):
            values[zlib.crc32(word.encode("utf-8")) % self.dimension] += 1.0
        if not any(values):
            values[0] = 1.0
        return values

    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        self.calls.append(list(texts))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with
        return [self.vector_for(text) for text in texts]


class FakeLanguageModel:
    """
    Scripted language model.

    Each generate() call pops the next scripted item: exceptions are raised,
    anything else is returned. The last item repeats once the script runs out.
    """

    def __init__(self, *script: Any, delay: float = 0.0):
        self.script: List[Any] = list(script)
        self.delay = delay
        self.calls: List[Dict[str, Any]] = []

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        schema: Any = None,
        temperature: float = 0.7,
    ) -> Any:
        self.calls.append(
            {
                "system_prompt": system_prompt,
                "user_prompt": user_prompt,
                "schema": schema,
                "temperature": temperature,
            }
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        if not self.script:
            raise RuntimeError("FakeLanguageModel has no scripted response")
        item = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(item, BaseException):
            raise item
        return item


class FakeReranker:
    """
    Rerank provider scoring each document with scorer(query, document).

    A fixed script of RerankScore replaces the scorer when given.
    """

    def __init__(
        self,
        scorer: Optional[Any] = None,
        script: Optional[List[RerankScore]] = None,
        delay: float = 0.0,
    ):
        self.scorer = scorer or (lambda query, document: float(len(document)))
        self.script = script
        self.delay = delay
        self.fail_with: Optional[BaseException] = None
        self.calls: List[Dict[str, Any]] = []

    async def rerank(self, query: str, documents: Sequence[str], top_n: int) -> List[RerankScore]:
        self.calls.append({"query": query, "documents": list(documents), "top_n": top_n})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with
        if self.script is not None:
            return list(self.script)
        scores = [
            RerankScore(index=position, relevance_score=self.scorer(query, document))
            for position, document in enumerate(documents)
        ]
        scores.sort(key=lambda score: score.relevance_score, reverse=True)
        return scores[:top_n]


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_embedder() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
async def db():
    """In-memory database with the full schema."""
    manager = DatabaseManager(":memory:")
    yield manager
    await manager.close()


@pytest.fixture
def store(db) -> SQLiteVectorStore:
    return SQLiteVectorStore(db, dimension=TEST_DIMENSION)


@pytest.fixture
def embedding_breaker(clock) -> CircuitBreaker:
    return CircuitBreaker("embeddings", failure_threshold=3, success_threshold=2, timeout=30.0, clock=clock)


@pytest.fixture
def embedding_client(fake_embedder, embedding_breaker) -> EmbeddingClient:
    return EmbeddingClient(
        fake_embedder, embedding_breaker, dimension=TEST_DIMENSION, batch_size=4, timeout=5.0
    )
