"""
Business services: indexing, tagging, and the retrieval facade.
"""

from nexusrag.services.indexing_service import IndexingService, SourceDocument, BulkIndexReport
from nexusrag.services.tag_service import TagService, normalize_tag_name
from nexusrag.services.retrieval_service import RetrievalService

__all__ = [
    "IndexingService",
    "SourceDocument",
    "BulkIndexReport",
    "TagService",
    "normalize_tag_name",
    "RetrievalService",
]
