"""
Retrieval Service - single entry point wiring every component from Settings.
"""

from typing import Any, Dict, List, Optional, Sequence, Union

from nexusrag.core.circuit_breaker import CircuitBreaker
from nexusrag.core.config import Settings
from nexusrag.core.database import DatabaseManager
from nexusrag.core.logging import AsyncLogger, logger
from nexusrag.core.tracing import metrics
from nexusrag.embeddings.client import EmbeddingClient
from nexusrag.models.chunk import SourceType
from nexusrag.models.search import IndexResult, SearchResult, TagResolution
from nexusrag.models.tag import TagLink, TagLinkStatus
from nexusrag.providers.base import EmbeddingProvider, LanguageModelProvider, RerankProvider
from nexusrag.providers.ollama import OllamaEmbeddingProvider, OllamaLanguageModel
from nexusrag.providers.rerank import HTTPRerankProvider
from nexusrag.rag.chunking.base import ChunkingPolicy
from nexusrag.rag.chunking.conversation import TurnLike
from nexusrag.rag.retrieval.hybrid_search import HybridSearch
from nexusrag.rag.retrieval.query_rewriter import QueryRewriter
from nexusrag.rag.retrieval.rerank import ResultReranker
from nexusrag.rag.store.sqlite_store import SQLiteVectorStore
from nexusrag.services.indexing_service import (
    BulkIndexReport,
    IndexingService,
    MetadataInput,
    SourceDocument,
)
from nexusrag.services.tag_service import TagService


class RetrievalService:
    """
    Facade over indexing, search, and tagging.

    Providers are built from Settings unless injected. Each provider gets
    its own circuit breaker, shared by every component using it.

    Usage:
    ```
    service = RetrievalService(Settings())
    await service.index("doc-1", SourceType.DOCUMENT, text)
    results = await service.search("how do refunds work", top_k=5)
    await service.close()
    ```
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        embedding_provider: Optional[EmbeddingProvider] = None,
        llm: Optional[LanguageModelProvider] = None,
        db: Optional[DatabaseManager] = None,
        rerank_provider: Optional[RerankProvider] = None,
    ):
        self.settings = settings or Settings()
        cfg = self.settings
        AsyncLogger.configure(cfg.get("logging.file"), cfg.get("logging.level"))

        self._owned_providers: List[Any] = []
        if embedding_provider is None:
            embedding_provider = OllamaEmbeddingProvider(
                model=cfg.require("embeddings.model"),
                base_url=cfg.require("embeddings.base_url"),
            )
            self._owned_providers.append(embedding_provider)
        if llm is None and cfg.get("llm.enabled", True):
            llm = OllamaLanguageModel(
                model=cfg.require("llm.model"), base_url=cfg.require("llm.base_url")
            )
            self._owned_providers.append(llm)
        if rerank_provider is None and cfg.get("rerank.enabled", False):
            rerank_provider = HTTPRerankProvider(
                model=cfg.require("rerank.model"),
                base_url=cfg.require("rerank.base_url"),
                api_key=cfg.get("rerank.api_key"),
                path=cfg.get("rerank.path", "/v1/rerank"),
            )
            self._owned_providers.append(rerank_provider)

        self.db = db or DatabaseManager(
            cfg.require("database.path"),
            query_timeout=cfg.get("database.query_timeout_seconds", 30.0),
        )
        dimension = cfg.require("embeddings.dimension")
        self.store = SQLiteVectorStore(self.db, dimension=dimension)

        self.embedding_breaker = self._make_breaker("embeddings")
        self.llm_breaker = self._make_breaker("llm")
        self.rerank_breaker = self._make_breaker("rerank")

        self.embedder = EmbeddingClient(
            embedding_provider,
            self.embedding_breaker,
            dimension=dimension,
            batch_size=cfg.get("embeddings.batch_size", 64),
            timeout=cfg.get("embeddings.timeout_seconds", 30.0),
        )
        llm_timeout = cfg.get("llm.timeout_seconds", 20.0)
        self.rewriter = QueryRewriter(llm, self.llm_breaker, timeout=llm_timeout)
        self.reranker = (
            ResultReranker(
                rerank_provider,
                self.rerank_breaker,
                timeout=cfg.get("rerank.timeout_seconds", 10.0),
                candidate_multiplier=cfg.get("rerank.candidate_multiplier", 4),
            )
            if rerank_provider is not None
            else None
        )

        self.indexer = IndexingService(
            self.store,
            self.embedder,
            ChunkingPolicy(
                max_chars=cfg.get("chunking.max_chars", 1000),
                min_source_chars=cfg.get("chunking.min_source_chars", 10),
                overlap_chars=cfg.get("chunking.overlap_chars", 0),
            ),
        )
        self.engine = HybridSearch(
            self.store,
            self.embedder,
            rewriter=self.rewriter,
            rrf_k=cfg.get("search.rrf_k", 60),
            overfetch_multiplier=cfg.get("search.overfetch_multiplier", 2),
            rewrite_queries=cfg.get("search.rewrite_queries", True),
            reranker=self.reranker,
        )
        self.tags = TagService(
            self.store,
            self.embedder,
            llm=llm,
            llm_breaker=self.llm_breaker,
            llm_timeout=llm_timeout,
            merge_threshold=cfg.get("tags.merge_threshold", 0.1),
            auto_confirm_threshold=cfg.get("tags.auto_confirm_threshold", 0.7),
            max_name_length=cfg.get("tags.max_name_length", 100),
            min_content_chars=cfg.get("tags.min_content_chars", 50),
        )
        self.default_top_k = cfg.get("search.top_k", 5)

        logger.info(
            "RetrievalService ready",
            db_path=self.db.db_path,
            dimension=dimension,
            llm="enabled" if llm is not None else "disabled",
            rerank="enabled" if self.reranker is not None else "disabled",
        )

    def _make_breaker(self, name: str) -> CircuitBreaker:
        return CircuitBreaker(
            name,
            failure_threshold=self.settings.get("circuit_breaker.failure_threshold", 5),
            success_threshold=self.settings.get("circuit_breaker.success_threshold", 2),
            timeout=self.settings.get("circuit_breaker.timeout_seconds", 30.0),
        )

    # Indexing

    async def index(
        self,
        source_id: str,
        source_type: Union[SourceType, str],
        text: str,
        owner_id: Optional[str] = None,
        metadata: MetadataInput = None,
    ) -> IndexResult:
        return await self.indexer.index(source_id, source_type, text, owner_id, metadata)

    async def index_conversation(
        self,
        conversation_id: str,
        turns: Sequence[TurnLike],
        owner_id: Optional[str] = None,
        metadata: MetadataInput = None,
    ) -> IndexResult:
        return await self.indexer.index_conversation(conversation_id, turns, owner_id, metadata)

    async def index_many(self, sources: Sequence[SourceDocument]) -> BulkIndexReport:
        return await self.indexer.index_many(sources)

    async def delete_source(self, source_id: str, source_type: Union[SourceType, str]) -> int:
        return await self.indexer.delete_source(source_id, source_type)

    # Search

    async def search(
        self,
        query: str,
        top_k: Optional[int] = None,
        source_types: Optional[Sequence[Union[SourceType, str]]] = None,
        owner_id: Optional[str] = None,
        conversation_context: Optional[str] = None,
    ) -> List[SearchResult]:
        return await self.engine.search(
            query,
            top_k=top_k if top_k is not None else self.default_top_k,
            source_types=source_types,
            owner_id=owner_id,
            conversation_context=conversation_context,
        )

    # Tags

    async def resolve_or_create_tag(self, candidate_name: str) -> TagResolution:
        return await self.tags.resolve_or_create_tag(candidate_name)

    async def link_tag(self, entity_id: str, tag_id: str, confidence: float) -> TagLink:
        return await self.tags.link_tag(entity_id, tag_id, confidence)

    async def set_link_status(
        self, entity_id: str, tag_id: str, status: Union[TagLinkStatus, str]
    ) -> TagLink:
        return await self.tags.set_link_status(entity_id, tag_id, status)

    async def list_entity_tags(self, entity_id: str, include_rejected: bool = False) -> List[TagLink]:
        return await self.tags.list_entity_tags(entity_id, include_rejected)

    async def generate_tags(self, entity_id: str, content: str) -> List[TagLink]:
        return await self.tags.generate_tags(entity_id, content)

    # Status

    def breaker_status(self) -> Dict[str, Dict[str, Any]]:
        return {
            "embeddings": self.embedding_breaker.get_status(),
            "llm": self.llm_breaker.get_status(),
            "rerank": self.rerank_breaker.get_status(),
        }

    async def stats(self) -> Dict[str, int]:
        return await self.store.stats()

    def counters(self) -> Dict[str, float]:
        """In-process counters since start-up (searches, degraded legs, tag merges...)."""
        return metrics.get_metrics()

    async def close(self) -> None:
        for provider in self._owned_providers:
            await provider.close()
        await self.db.close()
        logger.info("RetrievalService closed")
