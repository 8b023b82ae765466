"""
Interfaces for the external model providers.

Components depend on these protocols only; concrete providers are built
once and injected through constructors.
"""

from typing import (
    List,
    Optional,
    Protocol,
    Sequence,
    Type,
    TypeVar,
    Union,
    overload,
    runtime_checkable,
)

from pydantic import BaseModel

from nexusrag.models.search import RerankScore

M = TypeVar("M", bound=BaseModel)


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Text to fixed-dimension dense vectors, one per input, same order."""

    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]: ...


@runtime_checkable
class LanguageModelProvider(Protocol):
    """
    Text or structured generation.

    With a schema the provider returns a validated instance of it; without
    one it returns plain text.
    """

    @overload
    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        schema: None = None,
        temperature: float = ...,
    ) -> str: ...

    @overload
    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        schema: Type[M],
        temperature: float = ...,
    ) -> M: ...

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        schema: Optional[Type[M]] = None,
        temperature: float = 0.7,
    ) -> Union[str, M]: ...


@runtime_checkable
class RerankProvider(Protocol):
    """Scores candidate documents against a query; best first, at most top_n."""

    async def rerank(
        self, query: str, documents: Sequence[str], top_n: int
    ) -> List[RerankScore]: ...
