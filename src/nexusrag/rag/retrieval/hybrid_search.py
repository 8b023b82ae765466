"""
Hybrid search: semantic and lexical legs merged with Reciprocal Rank Fusion.

Both legs run concurrently and the merge waits for both. A leg whose
provider is unavailable contributes nothing; any other failure propagates
once both legs have finished. An optional reranker reorders a larger fused
pool afterwards.
"""

import asyncio
from typing import List, Optional, Sequence, Union

from nexusrag.core.exceptions import ProviderUnavailableError, ValidationError
from nexusrag.core.logging import logger
from nexusrag.core.tracing import metrics, tracer
from nexusrag.embeddings.client import EmbeddingClient
from nexusrag.models.chunk import SourceType
from nexusrag.models.search import SearchResult
from nexusrag.rag.retrieval.filters import SearchFilters
from nexusrag.rag.retrieval.fusion import DEFAULT_RRF_K, reciprocal_rank_fusion
from nexusrag.rag.retrieval.query_rewriter import QueryRewriter
from nexusrag.rag.retrieval.rerank import ResultReranker
from nexusrag.rag.store.base import RetrievedChunk, VectorStore


class HybridSearch:
    """
    Semantic + lexical search over one VectorStore.

    Each leg fetches overfetch_multiplier * pool candidates before fusion,
    where pool is top_k, or reranker.candidate_multiplier * top_k when a
    reranker is attached.
    """

    def __init__(
        self,
        store: VectorStore,
        embedder: EmbeddingClient,
        rewriter: Optional[QueryRewriter] = None,
        rrf_k: int = DEFAULT_RRF_K,
        overfetch_multiplier: int = 2,
        rewrite_queries: bool = True,
        reranker: Optional[ResultReranker] = None,
    ):
        if overfetch_multiplier < 1:
            raise ValueError("overfetch_multiplier must be at least 1")

        self.store = store
        self.embedder = embedder
        self.rewriter = rewriter
        self.rrf_k = rrf_k
        self.overfetch_multiplier = overfetch_multiplier
        self.rewrite_queries = rewrite_queries
        self.reranker = reranker

        logger.info(
            "HybridSearch initialized",
            rrf_k=rrf_k,
            overfetch_multiplier=overfetch_multiplier,
            rewriting="enabled" if rewriter is not None and rewrite_queries else "disabled",
            reranking="enabled" if reranker is not None else "disabled",
        )

    async def search(
        self,
        query: str,
        top_k: int = 5,
        source_types: Optional[Sequence[Union[SourceType, str]]] = None,
        owner_id: Optional[str] = None,
        conversation_context: Optional[str] = None,
    ) -> List[SearchResult]:
        """
        Ranked chunks for a query.

        Args:
            query: Free text; blank queries return []
            top_k: Number of results (>= 1)
            source_types: Restrict to these source types
            owner_id: Restrict to one owner's chunks
            conversation_context: Passed to the query rewriter

        Raises:
            ValidationError: top_k < 1
            StoreError: A store query failed
            DimensionMismatchError: Query embedding has the wrong size
        """
        if top_k < 1:
            raise ValidationError("top_k must be at least 1", context={"top_k": top_k})
        if not query or not query.strip():
            return []

        filters = SearchFilters.build(source_types, owner_id)
        pool = top_k * self.reranker.candidate_multiplier if self.reranker is not None else top_k
        limit = pool * self.overfetch_multiplier

        with tracer.span("hybrid_search", {"top_k": top_k, "limit": limit}):
            effective_query = query
            if self.rewriter is not None and self.rewrite_queries:
                effective_query = await self.rewriter.rewrite(query, conversation_context)

            vector_outcome, keyword_outcome = await asyncio.gather(
                self._vector_leg(effective_query, filters, limit),
                self._keyword_leg(effective_query, filters, limit),
                return_exceptions=True,
            )

            vector_hits = self._leg_hits("vector", vector_outcome)
            keyword_hits = self._leg_hits("keyword", keyword_outcome)

            results = reciprocal_rank_fusion(vector_hits, keyword_hits, k=self.rrf_k, top_k=pool)
            if self.reranker is not None:
                results = await self.reranker.rerank(effective_query, results, top_k)

        metrics.increment("search.queries")
        logger.debug(
            "Hybrid search completed",
            vector_hits=len(vector_hits),
            keyword_hits=len(keyword_hits),
            results=len(results),
        )
        return results

    async def _vector_leg(
        self, text: str, filters: SearchFilters, limit: int
    ) -> List[RetrievedChunk]:
        vector = await self.embedder.embed(text)
        return await self.store.nearest_neighbors(vector, filters, limit)

    async def _keyword_leg(
        self, text: str, filters: SearchFilters, limit: int
    ) -> List[RetrievedChunk]:
        return await self.store.lexical_search(text, filters, limit)

    def _leg_hits(
        self, leg: str, outcome: Union[List[RetrievedChunk], BaseException]
    ) -> List[RetrievedChunk]:
        if isinstance(outcome, ProviderUnavailableError):
            metrics.increment(f"search.degraded.{leg}")
            logger.warning(
                "Search leg degraded, continuing without it",
                leg=leg,
                error_type=type(outcome).__name__,
                error=str(outcome),
            )
            return []
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome
