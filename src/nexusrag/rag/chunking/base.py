"""
Base chunker for nexusrag.

Splitting preference, from coarsest to finest:
paragraph (blank line) -> sentence -> whitespace-bounded hard split -> raw characters.
A chunk never spans two paragraphs.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional

from nexusrag.core.exceptions import ConfigurationError

PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
# Keeps the separator so packed sentences retain their original spacing
SENTENCE_BREAK = re.compile(r"((?<=[.!?。！？])\s+|\n+)")


@dataclass(frozen=True)
class ChunkingPolicy:
    """
    Size rules shared by every chunker.

    Attributes:
        max_chars: Upper bound on chunk length
        min_source_chars: Sources shorter than this (after trimming) produce no chunks
        overlap_chars: Characters repeated between consecutive hard-split pieces
    """

    max_chars: int = 1000
    min_source_chars: int = 10
    overlap_chars: int = 0

    def __post_init__(self) -> None:
        if self.max_chars < 1:
            raise ConfigurationError("max_chars must be at least 1")
        if self.min_source_chars < 0:
            raise ConfigurationError("min_source_chars cannot be negative")
        if not 0 <= self.overlap_chars < self.max_chars:
            raise ConfigurationError("overlap_chars must be in [0, max_chars)")


class BaseChunker(ABC):
    """
    Turns a source into ordered chunk strings.

    Output guarantees: every chunk is non-empty after trimming and at most
    policy.max_chars long. Chunkers are pure: same input, same output.
    """

    def __init__(self, policy: Optional[ChunkingPolicy] = None):
        self.policy = policy or ChunkingPolicy()

    @abstractmethod
    def split(self, source: Any) -> List[str]:
        """Chunk a source of the type this chunker handles."""
        pass

    def _too_short(self, text: str) -> bool:
        return len(text.strip()) < max(self.policy.min_source_chars, 1)

    def _chunk_paragraphs(self, paragraphs: Iterable[str]) -> List[str]:
        chunks: List[str] = []
        for paragraph in paragraphs:
            chunks.extend(self._split_paragraph(paragraph))
        return chunks

    def _split_paragraph(self, paragraph: str) -> List[str]:
        text = paragraph.strip()
        if not text:
            return []
        if len(text) <= self.policy.max_chars:
            return [text]

        pieces = SENTENCE_BREAK.split(text)
        chunks: List[str] = []
        current = ""

        # pieces alternates sentence, separator, sentence, ...
        for i in range(0, len(pieces), 2):
            sentence = pieces[i]
            separator = pieces[i - 1] if i > 0 else ""
            if not sentence.strip():
                continue

            if len(sentence.strip()) > self.policy.max_chars:
                if current.strip():
                    chunks.append(current.strip())
                current = ""
                chunks.extend(self._hard_split(sentence.strip()))
                continue

            candidate = f"{current}{separator}{sentence}" if current else sentence
            if len(candidate.strip()) <= self.policy.max_chars:
                current = candidate
            else:
                chunks.append(current.strip())
                current = sentence

        if current.strip():
            chunks.append(current.strip())
        return chunks

    def _hard_split(self, text: str) -> List[str]:
        """Cut at the last whitespace inside the window, else at max_chars."""
        max_chars = self.policy.max_chars
        overlap = self.policy.overlap_chars
        chunks: List[str] = []
        start = 0

        while start < len(text):
            end = start + max_chars
            if end >= len(text):
                piece = text[start:].strip()
                if piece:
                    chunks.append(piece)
                break

            window = text[start:end]
            cut = max(window.rfind(" "), window.rfind("\n"), window.rfind("\t"))
            if cut <= 0:
                cut = max_chars

            piece = window[:cut].strip()
            if piece:
                chunks.append(piece)

            next_start = start + cut - overlap
            start = next_start if next_start > start else start + cut
            while start < len(text) and text[start].isspace():
                start += 1

        return chunks
