"""
Chunking for nexusrag: documents and conversation transcripts.
"""

from nexusrag.rag.chunking.base import BaseChunker, ChunkingPolicy
from nexusrag.rag.chunking.text import TextChunker
from nexusrag.rag.chunking.conversation import ConversationChunker, conversation_to_paragraphs
from nexusrag.rag.chunking.factory import get_chunker

__all__ = [
    "BaseChunker",
    "ChunkingPolicy",
    "TextChunker",
    "ConversationChunker",
    "conversation_to_paragraphs",
    "get_chunker",
]
