"""
Ollama-compatible HTTP providers for embeddings and generation.
"""

import json
from typing import Any, Dict, List, Optional, Sequence, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError as PydanticValidationError

from nexusrag.core.exceptions import ProviderUnavailableError
from nexusrag.core.logging import logger
from nexusrag.providers.http import JSONHTTPClient

M = TypeVar("M", bound=BaseModel)


class _OllamaHTTP(JSONHTTPClient):
    error_code = "OLLAMA_NO_RESPONSE"
    unavailable_hint = "Check that Ollama is running ('ollama serve')"


class OllamaEmbeddingProvider(_OllamaHTTP):
    """
    Embeddings through POST /api/embed.

    Request:  {"model": "...", "input": ["text", ...]}
    Response: {"embeddings": [[...], ...]}
    """

    def __init__(
        self,
        model: str,
        base_url: str = "http://localhost:11434",
        request_timeout: float = 60.0,
        max_attempts: int = 3,
    ) -> None:
        super().__init__(base_url, request_timeout, max_attempts)
        self.model = model
        logger.info("OllamaEmbeddingProvider ready", base_url=self.base_url, model=model)

    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        result = await self._post("/api/embed", {"model": self.model, "input": list(texts)})
        embeddings = result.get("embeddings")
        if not isinstance(embeddings, list):
            raise ProviderUnavailableError(
                "Embedding response has no 'embeddings' list",
                context={"keys": sorted(result.keys())},
            )
        return embeddings


class OllamaLanguageModel(_OllamaHTTP):
    """
    Generation through POST /api/generate (non-streaming).

    Structured output asks for JSON, extracts the outermost object, and
    validates it with pydantic, retrying with the validation error as feedback.
    """

    def __init__(
        self,
        model: str,
        base_url: str = "http://localhost:11434",
        request_timeout: float = 120.0,
        max_attempts: int = 3,
        structured_retries: int = 2,
    ) -> None:
        super().__init__(base_url, request_timeout, max_attempts)
        self.model = model
        self.structured_retries = structured_retries
        logger.info("OllamaLanguageModel ready", base_url=self.base_url, model=model)

    async def _generate_text(
        self, system_prompt: str, user_prompt: str, temperature: float, json_mode: bool
    ) -> str:
        payload: Dict[str, Any] = {
            "model": self.model,
            "prompt": user_prompt,
            "system": system_prompt,
            "stream": False,
            "options": {"temperature": temperature},
        }
        if json_mode:
            payload["format"] = "json"

        result = await self._post("/api/generate", payload)
        text = result.get("response", "")
        if not isinstance(text, str):
            raise ProviderUnavailableError("Generation response has no text")
        return text

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        schema: Optional[Type[M]] = None,
        temperature: float = 0.7,
    ) -> Union[str, M]:
        if schema is None:
            return await self._generate_text(system_prompt, user_prompt, temperature, False)

        schema_json = json.dumps(schema.model_json_schema(), indent=2)
        structured_system = (
            f"{system_prompt}\n\nRespond ONLY with valid JSON following this schema:\n{schema_json}"
        )
        prompt = user_prompt

        for attempt in range(self.structured_retries + 1):
            response = await self._generate_text(structured_system, prompt, temperature, True)
            try:
                return _parse_structured(response, schema)
            except (json.JSONDecodeError, ValueError, PydanticValidationError) as e:
                if attempt < self.structured_retries:
                    logger.warning(
                        "Structured generation failed, retrying", attempt=attempt + 1, error=str(e)
                    )
                    prompt = (
                        f"{user_prompt}\n\nPrevious attempt failed with error: {e}\n"
                        "Please answer with valid JSON following the schema."
                    )
                    continue
                logger.error(
                    "Structured generation failed permanently",
                    attempts=self.structured_retries + 1,
                    error=str(e),
                )
                raise ValueError(
                    f"No valid structured output after {self.structured_retries + 1} attempts: {e}"
                ) from e

        raise ValueError("No valid structured output")


def _parse_structured(response: str, schema: Type[M]) -> M:
    start_idx = response.find("{")
    end_idx = response.rfind("}")
    if start_idx < 0 or end_idx <= start_idx:
        raise ValueError("No JSON found in response")
    data = json.loads(response[start_idx : end_idx + 1])
    return schema.model_validate(data)
