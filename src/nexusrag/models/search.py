"""
Result types returned by indexing, search, and tag resolution.
"""

from enum import Enum
from typing import Optional

from pydantic import ConfigDict, Field

from nexusrag.models.base import NexusBaseModel
from nexusrag.models.chunk import SourceType


class SearchOrigin(str, Enum):
    """Which search leg(s) returned a fused result."""

    VECTOR = "vector"
    KEYWORD = "keyword"
    BOTH = "both"


class SearchResult(NexusBaseModel):
    chunk_id: str
    source_id: str
    source_type: SourceType
    content: str
    score: float = Field(..., ge=0.0, description="Fused RRF score")
    origin: SearchOrigin
    rerank_score: Optional[float] = Field(None, description="Reranker relevance, when reranked")


class RerankScore(NexusBaseModel):
    """Relevance of one candidate, by its position in the list sent to the reranker."""

    model_config = ConfigDict(extra="ignore")

    index: int = Field(..., ge=0)
    relevance_score: float


class IndexResult(NexusBaseModel):
    source_id: str
    source_type: SourceType
    chunks_written: int = Field(..., ge=0)


class TagMatch(str, Enum):
    EXACT = "exact"
    SEMANTIC = "semantic"
    CREATED = "created"


class TagResolution(NexusBaseModel):
    """
    Outcome of resolve_or_create_tag.

    merged is True whenever an existing tag absorbed the candidate
    (exact or semantic match).
    """

    tag_id: str
    name: str
    usage_count: int = Field(..., ge=0)
    merged: bool
    match: TagMatch
    distance: Optional[float] = Field(None, description="Cosine distance for semantic matches")
