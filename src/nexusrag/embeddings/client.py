"""
Embedding client: batching, breaker protection, and dimension checks
around an EmbeddingProvider.
"""

from typing import List, Sequence

from nexusrag.core.circuit_breaker import CircuitBreaker
from nexusrag.core.exceptions import (
    CircuitOpenError,
    DimensionMismatchError,
    ProviderUnavailableError,
    ValidationError,
)
from nexusrag.core.logging import logger
from nexusrag.core.tracing import metrics
from nexusrag.embeddings.types import EmbeddingVector
from nexusrag.providers.base import EmbeddingProvider


class EmbeddingClient:
    """
    Turns texts into EmbeddingVectors of a fixed dimension.

    Batches of `batch_size` texts are sent one after another; every provider
    call goes through the breaker with `timeout` seconds.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        breaker: CircuitBreaker,
        dimension: int,
        batch_size: int = 64,
        timeout: float = 30.0,
    ):
        if dimension < 1:
            raise ValueError("dimension must be at least 1")
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        self.provider = provider
        self.breaker = breaker
        self.dimension = dimension
        self.batch_size = batch_size
        self.timeout = timeout

    async def embed(self, text: str) -> EmbeddingVector:
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: Sequence[str]) -> List[EmbeddingVector]:
        """
        Embed texts in order.

        Raises:
            ValidationError: An input text is blank
            DimensionMismatchError: Provider returned the wrong count or size
            ProviderUnavailableError: Provider failed, timed out, or the circuit is open
        """
        if not texts:
            return []
        for position, text in enumerate(texts):
            if not text or not text.strip():
                raise ValidationError(
                    "Cannot embed blank text", context={"position": position}
                )

        results: List[EmbeddingVector] = []
        for start in range(0, len(texts), self.batch_size):
            batch = list(texts[start : start + self.batch_size])
            raw = await self._call_provider(batch)
            results.extend(self._validate(batch, raw))

        metrics.increment("embeddings.texts", len(texts))
        return results

    async def _call_provider(self, batch: List[str]) -> List[List[float]]:
        try:
            return await self.breaker.call(
                lambda: self.provider.embed_batch(batch), call_timeout=self.timeout
            )
        except CircuitOpenError:
            metrics.increment("embeddings.rejected")
            raise
        except ProviderUnavailableError:
            raise
        except DimensionMismatchError:
            raise
        except Exception as e:
            logger.warning(
                "Embedding provider call failed",
                batch_size=len(batch),
                error_type=type(e).__name__,
                error=str(e),
            )
            exc = ProviderUnavailableError(
                f"Embedding provider call failed: {type(e).__name__}: {e}",
                context={"batch_size": len(batch), "breaker": self.breaker.name},
                cause=e,
            )
            exc.add_suggestion("Check that the embedding service is running and reachable")
            raise exc from e

    def _validate(self, batch: List[str], raw: List[List[float]]) -> List[EmbeddingVector]:
        if raw is None or len(raw) != len(batch):
            got = 0 if raw is None else len(raw)
            logger.error("Embedding count mismatch", expected=len(batch), actual=got)
            raise DimensionMismatchError(
                f"Provider returned {got} embeddings for {len(batch)} texts",
                context={"expected": len(batch), "actual": got},
            )

        vectors = []
        for values in raw:
            if len(values) != self.dimension:
                logger.error(
                    "Embedding dimension mismatch", expected=self.dimension, actual=len(values)
                )
                exc = DimensionMismatchError(
                    f"Embedding must have {self.dimension} dimensions, has {len(values)}",
                    context={"expected": self.dimension, "actual": len(values)},
                )
                exc.add_suggestion("Set embeddings.dimension to the model's output size")
                raise exc
            vectors.append(EmbeddingVector(values, dimension=self.dimension))
        return vectors
