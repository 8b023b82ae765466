"""
Pydantic models shared across nexusrag.
"""

from nexusrag.models.base import NexusBaseModel, TimestampMixin, StandardIdMixin
from nexusrag.models.chunk import Chunk, ChunkMetadata, SourceType
from nexusrag.models.conversation import ConversationTurn
from nexusrag.models.search import (
    IndexResult,
    RerankScore,
    SearchOrigin,
    SearchResult,
    TagMatch,
    TagResolution,
)
from nexusrag.models.tag import Tag, TagLink, TagLinkStatus, TagSuggestions

__all__ = [
    "NexusBaseModel",
    "TimestampMixin",
    "StandardIdMixin",
    "Chunk",
    "ChunkMetadata",
    "SourceType",
    "ConversationTurn",
    "IndexResult",
    "RerankScore",
    "SearchOrigin",
    "SearchResult",
    "TagMatch",
    "TagResolution",
    "Tag",
    "TagLink",
    "TagLinkStatus",
    "TagSuggestions",
]
