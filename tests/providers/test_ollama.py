"""
Tests for the Ollama HTTP providers against a local aiohttp server.
"""

import aiohttp
import pytest
from pydantic import BaseModel

from nexusrag.core.exceptions import ProviderUnavailableError
from nexusrag.providers.http import is_transient
from nexusrag.providers.ollama import (
    OllamaEmbeddingProvider,
    OllamaLanguageModel,
    _parse_structured,
)


class Answer(BaseModel):
    text: str
    score: float


@pytest.fixture
async def embedder(server):
    provider = OllamaEmbeddingProvider(
        "nomic-embed-text", base_url=server.base_url, max_attempts=2
    )
    yield provider
    await provider.close()


@pytest.fixture
async def llm(server):
    provider = OllamaLanguageModel("llama3", base_url=server.base_url, max_attempts=1)
    yield provider
    await provider.close()


class TestEmbeddingProvider:
    @pytest.mark.asyncio
    async def test_embed_batch(self, server, embedder):
        server.reply("/api/embed", {"embeddings": [[0.1, 0.2], [0.3, 0.4]]})

        vectors = await embedder.embed_batch(["first", "second"])

        assert vectors == [[0.1, 0.2], [0.3, 0.4]]
        assert server.requests == [
            ("/api/embed", {"model": "nomic-embed-text", "input": ["first", "second"]})
        ]

    @pytest.mark.asyncio
    async def test_missing_embeddings_list(self, server, embedder):
        server.reply("/api/embed", {"error": "model not loaded"})

        with pytest.raises(ProviderUnavailableError) as exc_info:
            await embedder.embed_batch(["text"])

        assert exc_info.value.context["keys"] == ["error"]

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self, server, embedder):
        server.reply("/api/embed", {"error": "not found"}, status=404)

        with pytest.raises(ProviderUnavailableError) as exc_info:
            await embedder.embed_batch(["text"])

        assert exc_info.value.code == "OLLAMA_NO_RESPONSE"
        assert isinstance(exc_info.value.cause, aiohttp.ClientResponseError)
        assert len(server.requests) == 1

    @pytest.mark.asyncio
    async def test_server_error_is_retried(self, server, embedder):
        server.reply("/api/embed", {"error": "overloaded"}, status=503)
        server.reply("/api/embed", {"embeddings": [[1.0]]})

        assert await embedder.embed_batch(["text"]) == [[1.0]]
        assert len(server.requests) == 2

    @pytest.mark.asyncio
    async def test_close_releases_session(self, server, embedder):
        server.reply("/api/embed", {"embeddings": [[1.0]]})
        await embedder.embed_batch(["text"])
        session = embedder._session

        await embedder.close()
        await embedder.close()

        assert session.closed
        assert embedder._session is None


class TestLanguageModel:
    @pytest.mark.asyncio
    async def test_plain_generation(self, server, llm):
        server.reply("/api/generate", {"response": "hello"})

        text = await llm.generate("be brief", "say hello", temperature=0.2)

        assert text == "hello"
        _, payload = server.requests[0]
        assert payload["system"] == "be brief"
        assert payload["prompt"] == "say hello"
        assert payload["stream"] is False
        assert payload["options"] == {"temperature": 0.2}
        assert "format" not in payload

    @pytest.mark.asyncio
    async def test_structured_output_retries_with_feedback(self, server, llm):
        server.reply("/api/generate", {"response": "I cannot answer in JSON"})
        server.reply("/api/generate", {"response": 'Sure: {"text": "ok", "score": 0.5} done'})

        answer = await llm.generate("system", "question", schema=Answer)

        assert answer == Answer(text="ok", score=0.5)
        first, second = (payload for _, payload in server.requests)
        assert first["format"] == "json"
        assert '"score"' in first["system"]
        assert first["prompt"] == "question"
        assert second["prompt"].startswith("question\n\nPrevious attempt failed with error:")

    @pytest.mark.asyncio
    async def test_structured_output_gives_up(self, server):
        provider = OllamaLanguageModel(
            "llama3", base_url=server.base_url, max_attempts=1, structured_retries=1
        )
        server.reply("/api/generate", {"response": '{"text": "missing score"}'})
        try:
            with pytest.raises(ValueError, match="after 2 attempts"):
                await provider.generate("system", "question", schema=Answer)
        finally:
            await provider.close()

        assert len(server.requests) == 2


class TestHelpers:
    def test_parse_structured_takes_outermost_object(self):
        parsed = _parse_structured('noise {"text": "a {b}", "score": 1} trailing', Answer)

        assert parsed == Answer(text="a {b}", score=1.0)

    @pytest.mark.parametrize("response", ["no json here", "} backwards {"])
    def test_parse_structured_without_object(self, response):
        with pytest.raises(ValueError, match="No JSON"):
            _parse_structured(response, Answer)

    @pytest.mark.parametrize(
        "error, expected",
        [
            (aiohttp.ClientResponseError(None, (), status=400), False),
            (aiohttp.ClientResponseError(None, (), status=404), False),
            (aiohttp.ClientResponseError(None, (), status=500), True),
            (aiohttp.ClientResponseError(None, (), status=503), True),
            (aiohttp.ClientConnectionError("refused"), True),
        ],
    )
    def test_is_transient(self, error, expected):
        assert is_transient(error) is expected
