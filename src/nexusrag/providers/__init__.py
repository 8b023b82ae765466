"""
External model providers.
"""

from nexusrag.providers.base import EmbeddingProvider, LanguageModelProvider, RerankProvider
from nexusrag.providers.ollama import OllamaEmbeddingProvider, OllamaLanguageModel
from nexusrag.providers.rerank import HTTPRerankProvider

__all__ = [
    "EmbeddingProvider",
    "LanguageModelProvider",
    "RerankProvider",
    "OllamaEmbeddingProvider",
    "OllamaLanguageModel",
    "HTTPRerankProvider",
]
