"""
Search filters shared by both search legs.
"""

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple, Union

from nexusrag.models.chunk import SourceType


@dataclass(frozen=True)
class SearchFilters:
    """Optional restrictions applied inside the store query."""

    source_types: Optional[Tuple[SourceType, ...]] = None
    owner_id: Optional[str] = None

    @classmethod
    def build(
        cls,
        source_types: Optional[Sequence[Union[SourceType, str]]] = None,
        owner_id: Optional[str] = None,
    ) -> "SearchFilters":
        """Normalize loose caller input; an empty source_types list means no restriction."""
        types = tuple(SourceType(t) for t in source_types) if source_types else None
        return cls(source_types=types, owner_id=owner_id)

    @property
    def is_empty(self) -> bool:
        return self.source_types is None and self.owner_id is None
