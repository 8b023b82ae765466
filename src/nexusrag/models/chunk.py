"""
Chunk models.
A chunk is the unit that gets embedded, stored, and returned by search.
"""

from enum import Enum
from datetime import datetime
from typing import Dict, List, Optional, Union

from pydantic import Field, field_validator

from nexusrag.models.base import NexusBaseModel, TimestampMixin, StandardIdMixin

MetadataValue = Union[str, int, float, bool, None]


class SourceType(str, Enum):
    """Kind of source a chunk was cut from."""

    DOCUMENT = "document"
    CONVERSATION = "conversation"


class ChunkMetadata(NexusBaseModel):
    """
    Validated metadata attached to every chunk of a source.

    Known fields are typed; anything else goes in `attributes` as scalars.
    """

    title: Optional[str] = Field(None, max_length=500, description="Source title")
    url: Optional[str] = Field(None, description="Where the source lives")
    message_count: Optional[int] = Field(
        None, ge=0, description="Number of turns (conversation sources)"
    )
    indexed_at: Optional[datetime] = Field(None, description="When the source was indexed")
    attributes: Dict[str, MetadataValue] = Field(
        default_factory=dict, description="Free-form scalar key/values"
    )


class Chunk(NexusBaseModel, TimestampMixin, StandardIdMixin):
    """
    Indexed piece of a source.

    Chunks are never edited in place: re-indexing a source replaces its
    whole chunk set.
    """

    source_id: str = Field(..., min_length=1, description="Identifier of the source")
    source_type: SourceType = Field(..., description="document or conversation")
    content: str = Field(..., min_length=1, description="Chunk text")
    chunk_index: int = Field(..., ge=0, description="Ordinal within the source")
    owner_id: Optional[str] = Field(None, description="Owner used for search filtering")
    metadata: ChunkMetadata = Field(default_factory=ChunkMetadata)
    embedding: Optional[List[float]] = Field(
        None, exclude=True, description="Dense vector, kept out of serialized output"
    )

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Chunk content cannot be blank")
        return value
