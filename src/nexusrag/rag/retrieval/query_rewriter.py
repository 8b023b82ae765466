"""
LLM query rewriting in front of hybrid search.

Fail-open: whatever goes wrong, the caller gets the original query back.
"""

import asyncio
from typing import List, Optional

from pydantic import Field

from nexusrag.core.circuit_breaker import CircuitBreaker
from nexusrag.core.logging import logger
from nexusrag.core.tracing import metrics
from nexusrag.models.base import NexusBaseModel
from nexusrag.providers.base import LanguageModelProvider

REWRITE_SYSTEM_PROMPT = """You optimize search queries for a document retrieval system.
Decide whether the user's query needs rewriting to retrieve better results.

Rules:
1. Expand pronouns and vague references using the conversation context
   ("how much does it cost" -> "pricing plans of the note-taking app").
2. Add key domain terms, synonyms, and expand abbreviations.
3. Remove ambiguity about intent (how-to vs concept) and scope.
4. Do not over-rewrite: if the query is already clear, set should_rewrite to false
   and return it unchanged. Keep technical terms and proper names as they are."""

VARIANTS_SYSTEM_PROMPT = """You generate alternative phrasings of a search query to improve recall.
Keep the meaning, vary the vocabulary, and cover different angles (definition, method, rationale)."""


class QueryRewrite(NexusBaseModel):
    rewritten_query: str = Field(..., description="Query better suited to vector retrieval")
    reasoning: Optional[str] = Field(None, description="Why the query was rewritten")
    should_rewrite: bool = Field(..., description="Whether a rewrite is needed")


class QueryVariants(NexusBaseModel):
    variants: List[str] = Field(default_factory=list, description="Alternative phrasings")


class QueryRewriter:
    """
    Rewrites queries with a language model.

    Without a provider every call returns the original query.
    """

    def __init__(
        self,
        llm: Optional[LanguageModelProvider],
        breaker: Optional[CircuitBreaker] = None,
        timeout: float = 20.0,
    ):
        self.llm = llm
        self.breaker = breaker
        self.timeout = timeout

    async def _generate(
        self,
        llm: LanguageModelProvider,
        system_prompt: str,
        user_prompt: str,
        schema,
        temperature: float,
    ):
        def factory():
            return llm.generate(system_prompt, user_prompt, schema=schema, temperature=temperature)

        if self.breaker is not None:
            return await self.breaker.call(factory, call_timeout=self.timeout)
        return await asyncio.wait_for(factory(), timeout=self.timeout)

    async def rewrite(
        self,
        query: str,
        conversation_context: Optional[str] = None,
        force_rewrite: bool = False,
    ) -> str:
        if self.llm is None:
            logger.debug("No language model configured, using original query")
            return query
        if not query.strip():
            return query

        prompt = f'User query:\n"{query}"\n'
        if conversation_context:
            prompt += f"\nConversation context:\n{conversation_context}\n"

        try:
            result = await self._generate(
                self.llm, REWRITE_SYSTEM_PROMPT, prompt, QueryRewrite, 0.2
            )
        except Exception as e:
            metrics.increment("rewriter.failures")
            logger.warning(
                "Query rewrite failed, using original query",
                error_type=type(e).__name__,
                error=str(e),
            )
            return query

        if not isinstance(result, QueryRewrite):
            logger.warning("Query rewrite returned unexpected output, using original query")
            return query

        if not force_rewrite and not result.should_rewrite:
            logger.debug("No rewrite needed", query=query)
            return query

        rewritten = result.rewritten_query.strip()
        if not rewritten:
            return query

        logger.info("Query rewritten", original=query, rewritten=rewritten, reasoning=result.reasoning)
        return rewritten

    async def rewrite_variants(self, query: str, count: int = 3) -> List[str]:
        """
        Original query followed by up to `count` distinct variants.

        Returns [query] on any failure.
        """
        if self.llm is None or count < 1 or not query.strip():
            return [query]

        prompt = f'Original query:\n"{query}"\n\nGenerate {count} variants.'
        try:
            result = await self._generate(
                self.llm, VARIANTS_SYSTEM_PROMPT, prompt, QueryVariants, 0.5
            )
        except Exception as e:
            logger.warning("Variant generation failed", error_type=type(e).__name__, error=str(e))
            return [query]

        if not isinstance(result, QueryVariants):
            return [query]

        queries = [query]
        for variant in result.variants:
            cleaned = variant.strip()
            if cleaned and cleaned not in queries:
                queries.append(cleaned)
            if len(queries) > count:
                break

        logger.debug("Generated query variants", query=query, variants=len(queries) - 1)
        return queries
