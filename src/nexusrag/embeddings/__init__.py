"""
Embeddings module for nexusrag.
"""

from nexusrag.embeddings.types import EmbeddingVector
from nexusrag.embeddings.client import EmbeddingClient

__all__ = ["EmbeddingVector", "EmbeddingClient"]
