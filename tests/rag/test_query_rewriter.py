"""
Tests for QueryRewriter. Every failure path must hand back the original query.
"""

import pytest

from nexusrag.core.circuit_breaker import CircuitBreaker
from nexusrag.rag.retrieval.query_rewriter import QueryRewrite, QueryRewriter, QueryVariants
from tests.conftest import FakeLanguageModel


def rewrite(text: str, should: bool = True) -> QueryRewrite:
    return QueryRewrite(rewritten_query=text, reasoning="expanded pronoun", should_rewrite=should)


@pytest.mark.asyncio
async def test_rewrites_when_model_asks_to():
    llm = FakeLanguageModel(rewrite("pricing plans of the note-taking app"))
    rewriter = QueryRewriter(llm)

    result = await rewriter.rewrite("how much does it cost", "We talked about the note-taking app")

    assert result == "pricing plans of the note-taking app"
    call = llm.calls[0]
    assert call["schema"] is QueryRewrite
    assert "how much does it cost" in call["user_prompt"]
    assert "note-taking app" in call["user_prompt"]


@pytest.mark.asyncio
async def test_keeps_query_when_no_rewrite_needed():
    rewriter = QueryRewriter(FakeLanguageModel(rewrite("something else", should=False)))

    assert await rewriter.rewrite("postgres vacuum settings") == "postgres vacuum settings"


@pytest.mark.asyncio
async def test_force_rewrite_overrides_model_decision():
    rewriter = QueryRewriter(FakeLanguageModel(rewrite("postgres autovacuum tuning", should=False)))

    result = await rewriter.rewrite("postgres vacuum settings", force_rewrite=True)

    assert result == "postgres autovacuum tuning"


@pytest.mark.asyncio
async def test_blank_rewrite_falls_back():
    rewriter = QueryRewriter(FakeLanguageModel(rewrite("   ")))

    assert await rewriter.rewrite("original") == "original"


@pytest.mark.asyncio
async def test_without_model_returns_original():
    assert await QueryRewriter(None).rewrite("original") == "original"


@pytest.mark.asyncio
async def test_model_error_returns_original():
    rewriter = QueryRewriter(FakeLanguageModel(ConnectionError("refused")))

    assert await rewriter.rewrite("original") == "original"


@pytest.mark.asyncio
async def test_timeout_returns_original():
    rewriter = QueryRewriter(FakeLanguageModel(rewrite("late"), delay=0.5), timeout=0.01)

    assert await rewriter.rewrite("original") == "original"


@pytest.mark.asyncio
async def test_unexpected_output_returns_original():
    rewriter = QueryRewriter(FakeLanguageModel("plain text, not a model"))

    assert await rewriter.rewrite("original") == "original"


@pytest.mark.asyncio
async def test_open_breaker_returns_original_without_calling(clock):
    llm = FakeLanguageModel(ConnectionError("refused"))
    breaker = CircuitBreaker("llm", failure_threshold=1, timeout=30.0, clock=clock)
    rewriter = QueryRewriter(llm, breaker)

    assert await rewriter.rewrite("first") == "first"
    assert await rewriter.rewrite("second") == "second"
    assert len(llm.calls) == 1


@pytest.mark.asyncio
async def test_variants_original_first_and_deduplicated():
    llm = FakeLanguageModel(
        QueryVariants(variants=["refund policy", "original", " refund policy ", "money back", "returns"])
    )
    rewriter = QueryRewriter(llm)

    variants = await rewriter.rewrite_variants("original", count=2)

    assert variants == ["original", "refund policy", "money back"]


@pytest.mark.asyncio
async def test_variants_failure_returns_only_original():
    rewriter = QueryRewriter(FakeLanguageModel(RuntimeError("bad json")))

    assert await rewriter.rewrite_variants("original") == ["original"]


@pytest.mark.asyncio
async def test_generation_goes_to_the_given_model():
    configured = FakeLanguageModel(rewrite("unused"))
    other = FakeLanguageModel(QueryVariants(variants=["a"]))
    rewriter = QueryRewriter(configured)

    result = await rewriter._generate(other, "system", "prompt", QueryVariants, 0.5)

    assert result == QueryVariants(variants=["a"])
    assert configured.calls == []
    assert other.calls[0]["temperature"] == 0.5
