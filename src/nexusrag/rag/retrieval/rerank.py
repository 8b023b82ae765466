"""
Second-stage reranking of fused search results.

Runs after RRF on a larger candidate pool. Fail-open: any provider
failure, timeout, or unusable response keeps the fused order.
"""

import asyncio
from typing import List, Optional

from nexusrag.core.circuit_breaker import CircuitBreaker
from nexusrag.core.logging import logger
from nexusrag.core.tracing import metrics
from nexusrag.models.search import RerankScore, SearchResult
from nexusrag.providers.base import RerankProvider


class ResultReranker:
    """
    Reorders fused candidates with a rerank provider.

    HybridSearch asks for candidate_multiplier * top_k fused candidates
    when a reranker is attached.
    """

    def __init__(
        self,
        provider: RerankProvider,
        breaker: Optional[CircuitBreaker] = None,
        timeout: float = 10.0,
        candidate_multiplier: int = 4,
    ):
        if candidate_multiplier < 1:
            raise ValueError("candidate_multiplier must be at least 1")

        self.provider = provider
        self.breaker = breaker
        self.timeout = timeout
        self.candidate_multiplier = candidate_multiplier

    async def _score(
        self, query: str, candidates: List[SearchResult], top_k: int
    ) -> List[RerankScore]:
        provider = self.provider
        documents = [candidate.content for candidate in candidates]

        def factory():
            return provider.rerank(query, documents, top_k)

        if self.breaker is not None:
            return await self.breaker.call(factory, call_timeout=self.timeout)
        return await asyncio.wait_for(factory(), timeout=self.timeout)

    async def rerank(
        self, query: str, candidates: List[SearchResult], top_k: int
    ) -> List[SearchResult]:
        """
        Best top_k candidates by reranker relevance.

        Scored candidates come first (relevance descending, ties in fused
        order); unscored ones fill any remaining slots in fused order.
        """
        if len(candidates) <= 1:
            return candidates[:top_k]

        try:
            scores = await self._score(query, candidates, top_k)
        except Exception as e:
            metrics.increment("search.rerank.fallback")
            logger.warning(
                "Rerank failed, keeping fused order",
                error_type=type(e).__name__,
                error=str(e),
            )
            return candidates[:top_k]

        relevance = {}
        for score in scores:
            if score.index >= len(candidates) or score.index in relevance:
                logger.debug("Ignoring rerank score", index=score.index)
                continue
            relevance[score.index] = score.relevance_score

        if not relevance:
            metrics.increment("search.rerank.fallback")
            logger.warning("Rerank returned no usable scores, keeping fused order")
            return candidates[:top_k]

        scored = sorted(relevance, key=lambda index: (-relevance[index], index))
        unscored = [index for index in range(len(candidates)) if index not in relevance]

        reranked = [
            candidates[index].model_copy(update={"rerank_score": relevance[index]})
            for index in scored
        ] + [candidates[index] for index in unscored]

        metrics.increment("search.reranked")
        logger.debug("Reranked candidates", candidates=len(candidates), scored=len(relevance))
        return reranked[:top_k]
