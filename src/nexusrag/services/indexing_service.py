"""
Indexing Service - chunk, embed, and replace a source's chunk set.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from pydantic import ValidationError as PydanticValidationError

from nexusrag.core.exceptions import NexusRAGError, ValidationError
from nexusrag.core.logging import logger, PerformanceLogger
from nexusrag.core.tracing import metrics
from nexusrag.core.utils.datetime_utils import utc_now
from nexusrag.core.utils.locks import KeyedLock
from nexusrag.embeddings.client import EmbeddingClient
from nexusrag.models.chunk import Chunk, ChunkMetadata, SourceType
from nexusrag.models.search import IndexResult
from nexusrag.rag.chunking.base import ChunkingPolicy
from nexusrag.rag.chunking.conversation import TurnLike
from nexusrag.rag.chunking.factory import get_chunker
from nexusrag.rag.store.base import VectorStore

MetadataInput = Union[ChunkMetadata, Dict[str, Any], None]


@dataclass
class SourceDocument:
    """One entry of a bulk re-index."""

    source_id: str
    text: str
    source_type: SourceType = SourceType.DOCUMENT
    owner_id: Optional[str] = None
    metadata: MetadataInput = None


@dataclass
class BulkIndexReport:
    results: List[IndexResult] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def processed(self) -> int:
        return len(self.results)


class IndexingService:
    """
    Orchestrates the indexing pipeline.

    PIPELINE:
    1. Chunking -> ordered chunk strings
    2. Embeddings -> one vector per chunk, whole source or nothing
    3. Store -> delete old set and insert new set in one transaction

    Concurrent indexing of the same (source_id, source_type) is serialized
    inside this process.
    """

    def __init__(
        self,
        store: VectorStore,
        embedder: EmbeddingClient,
        policy: Optional[ChunkingPolicy] = None,
    ):
        self.store = store
        self.embedder = embedder
        self.policy = policy or ChunkingPolicy()
        self._source_locks = KeyedLock()
        self.perf = PerformanceLogger("indexing")

    def _source_type(self, value: Union[SourceType, str]) -> SourceType:
        try:
            return SourceType(value)
        except ValueError as e:
            raise ValidationError(f"Unknown source type: {value!r}", cause=e)

    def _build_metadata(self, metadata: MetadataInput, **updates: Any) -> ChunkMetadata:
        try:
            if metadata is None:
                base = ChunkMetadata()
            elif isinstance(metadata, ChunkMetadata):
                base = metadata
            else:
                base = ChunkMetadata.model_validate(metadata)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid chunk metadata: {e}", cause=e)
        return base.model_copy(update={"indexed_at": utc_now(), **updates})

    async def index(
        self,
        source_id: str,
        source_type: Union[SourceType, str],
        text: str,
        owner_id: Optional[str] = None,
        metadata: MetadataInput = None,
    ) -> IndexResult:
        """
        Replace the chunks of one source.

        An empty or too-short source writes nothing and leaves existing
        chunks untouched.

        Raises:
            ProviderUnavailableError: Embedding failed; nothing was written
            DimensionMismatchError: Provider returned vectors of the wrong size
            StoreError: The transaction was rolled back
        """
        kind = self._source_type(source_type)
        chunker = get_chunker(kind, self.policy)
        pieces = chunker.split(text)
        return await self._index_pieces(
            source_id, kind, pieces, owner_id, self._build_metadata(metadata)
        )

    async def index_conversation(
        self,
        conversation_id: str,
        turns: Sequence[TurnLike],
        owner_id: Optional[str] = None,
        metadata: MetadataInput = None,
    ) -> IndexResult:
        """Index a transcript; every user turn starts a new exchange paragraph."""
        chunker = get_chunker(SourceType.CONVERSATION, self.policy)
        try:
            pieces = chunker.split(turns)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid conversation turn: {e}", cause=e)
        chunk_metadata = self._build_metadata(metadata, message_count=len(turns))
        return await self._index_pieces(
            conversation_id, SourceType.CONVERSATION, pieces, owner_id, chunk_metadata
        )

    async def _index_pieces(
        self,
        source_id: str,
        source_type: SourceType,
        pieces: List[str],
        owner_id: Optional[str],
        metadata: ChunkMetadata,
    ) -> IndexResult:
        if not source_id or not source_id.strip():
            raise ValidationError("source_id cannot be blank")

        if not pieces:
            logger.info(
                "Nothing to index", source_id=source_id, source_type=source_type.value
            )
            return IndexResult(source_id=source_id, source_type=source_type, chunks_written=0)

        async with self._source_locks.acquire((source_id, source_type.value)):
            with self.perf.measure("index_source", source_id=source_id, chunks=len(pieces)):
                vectors = await self.embedder.embed_batch(pieces)

                chunks = [
                    Chunk(
                        source_id=source_id,
                        source_type=source_type,
                        content=content,
                        chunk_index=position,
                        owner_id=owner_id,
                        metadata=metadata,
                        embedding=vector.list,
                    )
                    for position, (content, vector) in enumerate(zip(pieces, vectors))
                ]

                written = await self.store.replace_chunks(source_id, source_type, chunks)

        metrics.increment("indexing.chunks", written)
        logger.info(
            "Source indexed",
            source_id=source_id,
            source_type=source_type.value,
            chunks=written,
        )
        return IndexResult(source_id=source_id, source_type=source_type, chunks_written=written)

    async def delete_source(self, source_id: str, source_type: Union[SourceType, str]) -> int:
        kind = self._source_type(source_type)
        async with self._source_locks.acquire((source_id, kind.value)):
            removed = await self.store.delete_source(source_id, kind)
        logger.info("Source deleted", source_id=source_id, source_type=kind.value, chunks=removed)
        return removed

    async def index_many(self, sources: Iterable[SourceDocument]) -> BulkIndexReport:
        """
        Re-index sources one after another.

        A failing source is logged and recorded in the report; the rest
        still get indexed.
        """
        report = BulkIndexReport()
        for source in sources:
            try:
                result = await self.index(
                    source.source_id,
                    source.source_type,
                    source.text,
                    owner_id=source.owner_id,
                    metadata=source.metadata,
                )
                report.results.append(result)
            except NexusRAGError as e:
                logger.error(
                    "Failed to index source",
                    source_id=source.source_id,
                    error_code=e.code,
                    error=str(e),
                )
                report.failures[source.source_id] = e.message

        logger.info(
            "Bulk indexing finished", processed=report.processed, failed=len(report.failures)
        )
        return report
