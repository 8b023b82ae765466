"""
Persistence interface for chunks, tags, and tag links.

The protocol hides the storage dialect: callers pass EmbeddingVectors and
plain text, never query fragments.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Protocol, Sequence, runtime_checkable

from nexusrag.embeddings.types import EmbeddingVector
from nexusrag.models.chunk import Chunk, ChunkMetadata, SourceType
from nexusrag.models.tag import Tag, TagLink, TagLinkStatus
from nexusrag.rag.retrieval.filters import SearchFilters


@dataclass
class RetrievedChunk:
    """
    A chunk as returned by one search leg.

    score is leg-specific: cosine distance for the vector leg (lower is
    better), bm25 rank for the keyword leg (lower is better).
    """

    chunk_id: str
    source_id: str
    source_type: SourceType
    content: str
    chunk_index: int
    owner_id: Optional[str] = None
    metadata: ChunkMetadata = field(default_factory=ChunkMetadata)
    score: float = 0.0


@dataclass
class TagMatchCandidate:
    tag: Tag
    distance: float


@runtime_checkable
class VectorStore(Protocol):
    # Chunks
    async def replace_chunks(
        self, source_id: str, source_type: SourceType, chunks: Sequence[Chunk]
    ) -> int: ...

    async def delete_source(self, source_id: str, source_type: SourceType) -> int: ...

    async def list_chunks(self, source_id: str, source_type: SourceType) -> List[Chunk]: ...

    async def nearest_neighbors(
        self, vector: EmbeddingVector, filters: SearchFilters, limit: int
    ) -> List[RetrievedChunk]: ...

    async def lexical_search(
        self, text: str, filters: SearchFilters, limit: int
    ) -> List[RetrievedChunk]: ...

    # Tags
    async def get_tag_by_name(self, name: str) -> Optional[Tag]: ...

    async def get_tag(self, tag_id: str) -> Optional[Tag]: ...

    async def nearest_tag(self, vector: EmbeddingVector) -> Optional[TagMatchCandidate]: ...

    async def insert_tag(self, tag: Tag) -> Tag: ...

    async def increment_tag_usage(self, tag_id: str) -> Tag: ...

    # Tag links
    async def get_tag_link(self, entity_id: str, tag_id: str) -> Optional[TagLink]: ...

    async def upsert_tag_link(self, link: TagLink) -> TagLink: ...

    async def update_tag_link_status(
        self,
        entity_id: str,
        tag_id: str,
        status: TagLinkStatus,
        confirmed_at: Optional[datetime],
    ) -> Optional[TagLink]: ...

    async def list_tag_links(
        self, entity_id: str, include_rejected: bool = False
    ) -> List[TagLink]: ...
