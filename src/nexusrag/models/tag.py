"""
Tag models: deduplicated tag names and their links to entities.
"""

from enum import Enum
from datetime import datetime
from typing import List, Optional

from pydantic import Field

from nexusrag.models.base import NexusBaseModel, TimestampMixin, StandardIdMixin


class TagLinkStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


class Tag(NexusBaseModel, TimestampMixin, StandardIdMixin):
    """
    Deduplicated tag.

    name_embedding is None only when the embedding provider was unavailable
    at creation time; such tags match by exact name only.
    """

    name: str = Field(..., min_length=1, description="Normalized tag name")
    name_embedding: Optional[List[float]] = Field(None, exclude=True)
    usage_count: int = Field(0, ge=0)


class TagLink(NexusBaseModel):
    """Association of a tag with an entity (document, conversation...)."""

    entity_id: str = Field(..., min_length=1)
    tag_id: str = Field(..., min_length=1)
    confidence: float = Field(..., ge=0.0, le=1.0)
    status: TagLinkStatus = TagLinkStatus.PENDING
    confirmed_at: Optional[datetime] = None
    created_at: datetime
    tag_name: Optional[str] = Field(None, description="Filled when listed with the tag")


class TagSuggestions(NexusBaseModel):
    """Structured output requested from the language model for auto-tagging."""

    tags: List[str] = Field(default_factory=list, description="Suggested tag names")
    confidence: List[float] = Field(
        default_factory=list, description="Confidence per tag, same order as tags"
    )
