"""
Chunker selection by source type.
"""

from typing import Optional, Union

from nexusrag.models.chunk import SourceType
from nexusrag.rag.chunking.base import BaseChunker, ChunkingPolicy
from nexusrag.rag.chunking.conversation import ConversationChunker
from nexusrag.rag.chunking.text import TextChunker


def get_chunker(
    source_type: Union[SourceType, str], policy: Optional[ChunkingPolicy] = None
) -> BaseChunker:
    """
    Return the chunker for a source type.

    Raises:
        ValueError: Unknown source type
    """
    kind = SourceType(source_type)
    if kind == SourceType.CONVERSATION:
        return ConversationChunker(policy)
    return TextChunker(policy)
