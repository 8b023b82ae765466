"""
Reciprocal Rank Fusion.

An item at zero-based rank r in a list contributes 1 / (k + r + 1).
Contributions are summed per chunk id across the vector and keyword lists.
"""

from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from nexusrag.models.search import SearchOrigin, SearchResult
from nexusrag.rag.store.base import RetrievedChunk

DEFAULT_RRF_K = 60


def rrf_contribution(rank: int, k: int = DEFAULT_RRF_K) -> float:
    return 1.0 / (k + rank + 1)


def reciprocal_rank_fusion(
    vector_hits: Sequence[RetrievedChunk],
    keyword_hits: Sequence[RetrievedChunk],
    k: int = DEFAULT_RRF_K,
    top_k: Optional[int] = None,
) -> List[SearchResult]:
    """
    Fuse two ranked lists into one.

    Deterministic: equal scores keep first-encounter order (vector list
    first, then keyword-only items in keyword order). A chunk repeated
    inside one list only counts at its first rank; later items keep
    their original positions.

    Args:
        vector_hits: Semantic leg, best first
        keyword_hits: Lexical leg, best first
        k: RRF smoothing constant
        top_k: Truncate the fused list (None keeps everything)
    """
    if k < 0:
        raise ValueError("k cannot be negative")

    # dicts keep insertion order, which is the tie-break order
    fused: Dict[str, Dict] = {}

    for rank, hit in _first_occurrences(vector_hits):
        fused[hit.chunk_id] = {
            "hit": hit,
            "score": rrf_contribution(rank, k),
            "origin": SearchOrigin.VECTOR,
        }

    for rank, hit in _first_occurrences(keyword_hits):
        entry = fused.get(hit.chunk_id)
        if entry is not None:
            entry["score"] += rrf_contribution(rank, k)
            entry["origin"] = SearchOrigin.BOTH
        else:
            fused[hit.chunk_id] = {
                "hit": hit,
                "score": rrf_contribution(rank, k),
                "origin": SearchOrigin.KEYWORD,
            }

    # sorted() is stable
    ranked = sorted(fused.values(), key=lambda entry: entry["score"], reverse=True)
    if top_k is not None:
        ranked = ranked[:top_k]

    return [
        SearchResult(
            chunk_id=entry["hit"].chunk_id,
            source_id=entry["hit"].source_id,
            source_type=entry["hit"].source_type,
            content=entry["hit"].content,
            score=entry["score"],
            origin=entry["origin"],
        )
        for entry in ranked
    ]


def _first_occurrences(hits: Sequence[RetrievedChunk]) -> Iterator[Tuple[int, RetrievedChunk]]:
    """Yield (rank, hit) for the first occurrence of each chunk id, rank taken from the input."""
    seen = set()
    for rank, hit in enumerate(hits):
        if hit.chunk_id not in seen:
            seen.add(hit.chunk_id)
            yield rank, hit
