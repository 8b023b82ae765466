"""
Plain-text document chunker.
"""

from typing import List

from nexusrag.rag.chunking.base import BaseChunker, PARAGRAPH_BREAK


class TextChunker(BaseChunker):
    """
    Paragraph-first chunker for documents.

    Each paragraph yields at least one chunk; short paragraphs are not merged.
    """

    def split(self, source: str) -> List[str]:
        if not source or self._too_short(source):
            return []
        return self._chunk_paragraphs(PARAGRAPH_BREAK.split(source))
