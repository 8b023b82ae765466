"""
Tag Service - deduplicated tags and entity tag links.

Resolution order for a candidate name:
1. Exact name match -> reuse (usage_count + 1)
2. Nearest tag by cosine distance below merge_threshold -> reuse
3. Otherwise create with usage_count = 1
"""

import asyncio
import re
from typing import List, Optional, Union

from nexusrag.core.circuit_breaker import CircuitBreaker
from nexusrag.core.exceptions import (
    NexusRAGError,
    NotFoundError,
    ProviderUnavailableError,
    StoreConstraintError,
    ValidationError,
)
from nexusrag.core.logging import logger
from nexusrag.core.tracing import metrics
from nexusrag.core.utils.datetime_utils import utc_now
from nexusrag.core.utils.locks import KeyedLock
from nexusrag.embeddings.client import EmbeddingClient
from nexusrag.embeddings.types import EmbeddingVector
from nexusrag.models.search import TagMatch, TagResolution
from nexusrag.models.tag import Tag, TagLink, TagLinkStatus, TagSuggestions
from nexusrag.providers.base import LanguageModelProvider
from nexusrag.rag.store.base import VectorStore

_WHITESPACE = re.compile(r"\s+")

DEFAULT_CONFIDENCE = 0.5

TAG_SYSTEM_PROMPT = """You label documents with short topical tags.
Return between 3 and 8 tags. Each tag is a noun phrase of at most four words,
in the document's language, without '#' or punctuation. For each tag give a
confidence between 0 and 1 that it describes the document's main subject."""


def normalize_tag_name(candidate: str, max_length: int = 100) -> str:
    """Trim, collapse internal whitespace, and cap the length."""
    name = _WHITESPACE.sub(" ", candidate or "").strip()
    return name[:max_length].rstrip()


class TagService:
    """
    Resolves candidate tag names and manages tag links.

    Resolution for one normalized name is serialized inside this process,
    so two concurrent requests for the same new tag create it once.
    """

    def __init__(
        self,
        store: VectorStore,
        embedder: EmbeddingClient,
        llm: Optional[LanguageModelProvider] = None,
        llm_breaker: Optional[CircuitBreaker] = None,
        llm_timeout: float = 20.0,
        merge_threshold: float = 0.1,
        auto_confirm_threshold: float = 0.7,
        max_name_length: int = 100,
        min_content_chars: int = 50,
    ):
        self.store = store
        self.embedder = embedder
        self.llm = llm
        self.llm_breaker = llm_breaker
        self.llm_timeout = llm_timeout
        self.merge_threshold = merge_threshold
        self.auto_confirm_threshold = auto_confirm_threshold
        self.max_name_length = max_name_length
        self.min_content_chars = min_content_chars
        self._name_locks = KeyedLock()

    async def resolve_or_create_tag(self, candidate: str) -> TagResolution:
        """
        Find the tag a candidate name belongs to, creating it if needed.

        If the embedding provider is unavailable the candidate can only match
        by exact name, and a new tag is stored without an embedding.

        Raises:
            ValidationError: Candidate is blank after normalization
            DimensionMismatchError: Provider returned a vector of the wrong size
            StoreError: Persistence failed
        """
        name = normalize_tag_name(candidate, self.max_name_length)
        if not name:
            raise ValidationError("Tag name cannot be blank", context={"candidate": candidate})

        async with self._name_locks.acquire(name.casefold()):
            existing = await self.store.get_tag_by_name(name)
            if existing is not None:
                return await self._reuse(existing, TagMatch.EXACT)

            vector: Optional[EmbeddingVector] = None
            try:
                vector = await self.embedder.embed(name)
            except ProviderUnavailableError as e:
                metrics.increment("tags.embedding_unavailable")
                logger.warning(
                    "Tag embedding unavailable, matching by exact name only",
                    tag=name,
                    error=str(e),
                )

            if vector is not None:
                nearest = await self.store.nearest_tag(vector)
                if nearest is not None and nearest.distance < self.merge_threshold:
                    logger.info(
                        "Tag merged into similar tag",
                        candidate=name,
                        tag=nearest.tag.name,
                        distance=nearest.distance,
                    )
                    return await self._reuse(nearest.tag, TagMatch.SEMANTIC, nearest.distance)

            tag = Tag(
                name=name,
                name_embedding=vector.list if vector is not None else None,
                usage_count=1,
            )
            try:
                stored = await self.store.insert_tag(tag)
            except StoreConstraintError:
                # Another process created the same name first
                racing = await self.store.get_tag_by_name(name)
                if racing is None:
                    raise
                return await self._reuse(racing, TagMatch.EXACT)

        metrics.increment("tags.created")
        logger.info("Tag created", tag=name, tag_id=stored.id, embedded=vector is not None)
        return TagResolution(
            tag_id=stored.id,
            name=stored.name,
            usage_count=stored.usage_count,
            merged=False,
            match=TagMatch.CREATED,
        )

    async def _reuse(
        self, tag: Tag, match: TagMatch, distance: Optional[float] = None
    ) -> TagResolution:
        updated = await self.store.increment_tag_usage(tag.id)
        metrics.increment(f"tags.reused.{match.value}")
        return TagResolution(
            tag_id=updated.id,
            name=updated.name,
            usage_count=updated.usage_count,
            merged=True,
            match=match,
            distance=distance,
        )

    async def link_tag(self, entity_id: str, tag_id: str, confidence: float) -> TagLink:
        """
        Link a tag to an entity.

        New links are confirmed when confidence >= auto_confirm_threshold,
        pending otherwise. Re-linking updates the confidence; a rejected
        link stays rejected and a confirmed one stays confirmed.
        """
        if not 0.0 <= confidence <= 1.0:
            raise ValidationError(
                "confidence must be between 0 and 1", context={"confidence": confidence}
            )
        if await self.store.get_tag(tag_id) is None:
            raise NotFoundError(f"Tag not found: {tag_id}", context={"tag_id": tag_id})

        now = utc_now()
        existing = await self.store.get_tag_link(entity_id, tag_id)

        if existing is not None and existing.status != TagLinkStatus.PENDING:
            status = TagLinkStatus(existing.status)
            confirmed_at = existing.confirmed_at
        elif confidence >= self.auto_confirm_threshold:
            status = TagLinkStatus.CONFIRMED
            confirmed_at = now
        else:
            status = TagLinkStatus.PENDING
            confirmed_at = None

        link = TagLink(
            entity_id=entity_id,
            tag_id=tag_id,
            confidence=confidence,
            status=status,
            confirmed_at=confirmed_at,
            created_at=existing.created_at if existing is not None else now,
        )
        stored = await self.store.upsert_tag_link(link)
        logger.debug(
            "Tag linked", entity_id=entity_id, tag_id=tag_id, status=stored.status, confidence=confidence
        )
        return stored

    async def set_link_status(
        self, entity_id: str, tag_id: str, status: Union[TagLinkStatus, str]
    ) -> TagLink:
        """
        Confirm, reject, or reset a link.

        Setting the current status again changes nothing. Confirming stamps
        confirmed_at; any other status clears it.
        """
        try:
            target = TagLinkStatus(status)
        except ValueError as e:
            raise ValidationError(f"Unknown link status: {status!r}", cause=e)

        existing = await self.store.get_tag_link(entity_id, tag_id)
        if existing is None:
            raise NotFoundError(
                "Tag link not found", context={"entity_id": entity_id, "tag_id": tag_id}
            )
        if TagLinkStatus(existing.status) == target:
            return existing

        confirmed_at = utc_now() if target == TagLinkStatus.CONFIRMED else None
        updated = await self.store.update_tag_link_status(entity_id, tag_id, target, confirmed_at)
        if updated is None:
            raise NotFoundError(
                "Tag link not found", context={"entity_id": entity_id, "tag_id": tag_id}
            )
        logger.info("Tag link status changed", entity_id=entity_id, tag_id=tag_id, status=target.value)
        return updated

    async def list_entity_tags(self, entity_id: str, include_rejected: bool = False) -> List[TagLink]:
        return await self.store.list_tag_links(entity_id, include_rejected=include_rejected)

    async def _suggest(self, content: str) -> TagSuggestions:
        if self.llm is None:
            raise ProviderUnavailableError("No language model configured for tag generation")
        llm = self.llm
        prompt = f"Suggest tags for this document:\n\n{content}"

        def factory():
            return llm.generate(TAG_SYSTEM_PROMPT, prompt, schema=TagSuggestions, temperature=0.3)

        try:
            if self.llm_breaker is not None:
                result = await self.llm_breaker.call(factory, call_timeout=self.llm_timeout)
            else:
                result = await asyncio.wait_for(factory(), timeout=self.llm_timeout)
        except ProviderUnavailableError:
            raise
        except Exception as e:
            raise ProviderUnavailableError(
                f"Tag generation failed: {type(e).__name__}: {e}", cause=e
            ) from e

        if not isinstance(result, TagSuggestions):
            raise ProviderUnavailableError("Language model returned no tag suggestions")
        return result

    async def generate_tags(self, entity_id: str, content: str) -> List[TagLink]:
        """
        Ask the language model for tags and link each one to the entity.

        Content shorter than min_content_chars is skipped. A failure on one
        tag is logged and the remaining tags are still processed.

        Raises:
            ProviderUnavailableError: The language model could not be reached
        """
        if not content or len(content.strip()) < self.min_content_chars:
            logger.info("Content too short, skipping tag generation", entity_id=entity_id)
            return []

        suggestions = await self._suggest(content)

        links: List[TagLink] = []
        for position, tag_name in enumerate(suggestions.tags):
            confidence = (
                suggestions.confidence[position]
                if position < len(suggestions.confidence)
                else DEFAULT_CONFIDENCE
            )
            confidence = min(max(confidence, 0.0), 1.0)
            try:
                resolution = await self.resolve_or_create_tag(tag_name)
                links.append(await self.link_tag(entity_id, resolution.tag_id, confidence))
            except NexusRAGError as e:
                logger.error(
                    "Failed to process suggested tag",
                    entity_id=entity_id,
                    tag=tag_name,
                    error_code=e.code,
                    error=str(e),
                )

        logger.info(
            "Tags generated", entity_id=entity_id, suggested=len(suggestions.tags), linked=len(links)
        )
        return links
