"""
Tests for IndexingService.
"""

import asyncio

import pytest

from nexusrag.core.exceptions import ProviderUnavailableError, ValidationError
from nexusrag.models.chunk import SourceType
from nexusrag.models.conversation import ConversationTurn
from nexusrag.rag.chunking.base import ChunkingPolicy
from nexusrag.services.indexing_service import IndexingService, SourceDocument

ARTICLE = (
    "Solar panels convert sunlight into electricity.\n\n"
    "Wind turbines spin generators using moving air.\n\n"
    "Hydroelectric dams store energy as water behind a wall."
)


@pytest.fixture
def indexer(store, embedding_client) -> IndexingService:
    return IndexingService(store, embedding_client)


@pytest.mark.asyncio
async def test_index_document(indexer, store):
    result = await indexer.index(
        "article-1", SourceType.DOCUMENT, ARTICLE, owner_id="alice", metadata={"title": "Energy"}
    )

    assert result.chunks_written == 3
    assert result.source_type == "document"

    chunks = await store.list_chunks("article-1", SourceType.DOCUMENT)
    assert [c.chunk_index for c in chunks] == [0, 1, 2]
    assert chunks[1].content == "Wind turbines spin generators using moving air."
    assert all(c.owner_id == "alice" for c in chunks)
    assert chunks[0].metadata.title == "Energy"
    assert chunks[0].metadata.indexed_at is not None


@pytest.mark.asyncio
async def test_reindex_replaces_chunks(indexer, store):
    await indexer.index("article-1", "document", ARTICLE)

    result = await indexer.index("article-1", "document", "Only one paragraph remains now.")

    assert result.chunks_written == 1
    chunks = await store.list_chunks("article-1", SourceType.DOCUMENT)
    assert [c.content for c in chunks] == ["Only one paragraph remains now."]


@pytest.mark.asyncio
async def test_short_source_writes_nothing_and_keeps_old_chunks(indexer, store, fake_embedder):
    await indexer.index("article-1", "document", ARTICLE)
    calls = len(fake_embedder.calls)

    result = await indexer.index("article-1", "document", "tiny")

    assert result.chunks_written == 0
    assert len(fake_embedder.calls) == calls
    assert len(await store.list_chunks("article-1", SourceType.DOCUMENT)) == 3


@pytest.mark.asyncio
async def test_embedding_failure_leaves_store_untouched(indexer, store, fake_embedder):
    await indexer.index("article-1", "document", ARTICLE)
    fake_embedder.fail_with = ConnectionError("refused")

    with pytest.raises(ProviderUnavailableError):
        await indexer.index("article-1", "document", "A completely different text body.")

    chunks = await store.list_chunks("article-1", SourceType.DOCUMENT)
    assert len(chunks) == 3


@pytest.mark.asyncio
async def test_chunk_size_follows_policy(store, embedding_client):
    indexer = IndexingService(store, embedding_client, ChunkingPolicy(max_chars=20))

    result = await indexer.index("doc", "document", "word " * 30)

    chunks = await store.list_chunks("doc", SourceType.DOCUMENT)
    assert result.chunks_written == len(chunks) > 1
    assert all(len(c.content) <= 20 for c in chunks)


@pytest.mark.asyncio
async def test_index_conversation(indexer, store):
    turns = [
        {"role": "user", "content": "What is the refund window?"},
        ConversationTurn(role="assistant", content="Thirty days from delivery."),
        {"role": "user", "content": "Does it include shipping?"},
    ]

    result = await indexer.index_conversation("chat-1", turns, owner_id="bob")

    assert result.source_type == "conversation"
    assert result.chunks_written == 2
    chunks = await store.list_chunks("chat-1", SourceType.CONVERSATION)
    assert chunks[0].content.startswith("User: What is the refund window?\nAssistant:")
    assert chunks[0].metadata.message_count == 3


@pytest.mark.asyncio
async def test_invalid_turn(indexer):
    with pytest.raises(ValidationError):
        await indexer.index_conversation("chat-1", [{"content": "no role"}])


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "kwargs",
    [
        {"source_id": "doc", "source_type": "spreadsheet"},
        {"source_id": "  ", "source_type": "document"},
        {"source_id": "doc", "source_type": "document", "metadata": {"unknown_field": 1}},
        {"source_id": "doc", "source_type": "document", "metadata": {"message_count": -1}},
    ],
)
async def test_invalid_input(indexer, kwargs):
    with pytest.raises(ValidationError):
        await indexer.index(text=ARTICLE, **kwargs)


@pytest.mark.asyncio
async def test_delete_source(indexer, store):
    await indexer.index("article-1", "document", ARTICLE)

    assert await indexer.delete_source("article-1", "document") == 3
    assert await store.list_chunks("article-1", SourceType.DOCUMENT) == []


@pytest.mark.asyncio
async def test_concurrent_reindex_of_same_source(indexer, store):
    texts = [
        "First version of the text.",
        "Second version, now with two paragraphs.\n\nThe second one.",
    ]

    await asyncio.gather(*(indexer.index("doc", "document", text) for text in texts))

    chunks = await store.list_chunks("doc", SourceType.DOCUMENT)
    contents = [c.content for c in chunks]
    assert contents in (["First version of the text."], texts[1].split("\n\n"))


@pytest.mark.asyncio
async def test_index_many_continues_after_failure(indexer):
    report = await indexer.index_many(
        [
            SourceDocument(source_id="a", text=ARTICLE),
            SourceDocument(source_id="b", text=ARTICLE, source_type="spreadsheet"),
            SourceDocument(source_id="c", text="Another reasonably long text.", owner_id="carol"),
        ]
    )

    assert report.processed == 2
    assert [r.source_id for r in report.results] == ["a", "c"]
    assert list(report.failures) == ["b"]
