"""
Chunk and tag persistence.
"""

from nexusrag.rag.store.base import RetrievedChunk, TagMatchCandidate, VectorStore
from nexusrag.rag.store.sqlite_store import SQLiteVectorStore

__all__ = ["RetrievedChunk", "TagMatchCandidate", "VectorStore", "SQLiteVectorStore"]
