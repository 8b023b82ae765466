"""
Cross-encoder reranking through a rerank HTTP API.

Request:  {"model": "...", "query": "...", "documents": ["...", ...], "top_n": 5}
Response: {"results": [{"index": 0, "relevance_score": 0.93}, ...]}
          ("data" is accepted in place of "results")
"""

from typing import Dict, List, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError

from nexusrag.core.exceptions import ProviderUnavailableError
from nexusrag.core.logging import logger
from nexusrag.models.search import RerankScore
from nexusrag.providers.http import JSONHTTPClient


class HTTPRerankProvider(JSONHTTPClient):
    error_code = "RERANKER_NO_RESPONSE"
    unavailable_hint = "Check rerank.base_url and rerank.api_key"

    def __init__(
        self,
        model: str,
        base_url: str,
        api_key: Optional[str] = None,
        path: str = "/v1/rerank",
        request_timeout: float = 30.0,
        max_attempts: int = 2,
    ) -> None:
        headers: Dict[str, str] = {}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        super().__init__(base_url, request_timeout, max_attempts, headers=headers)
        self.model = model
        self.path = path
        logger.info("HTTPRerankProvider ready", base_url=self.base_url, model=model)

    async def rerank(self, query: str, documents: Sequence[str], top_n: int) -> List[RerankScore]:
        result = await self._post(
            self.path,
            {"model": self.model, "query": query, "documents": list(documents), "top_n": top_n},
        )
        items = result.get("results", result.get("data"))
        if not isinstance(items, list):
            raise ProviderUnavailableError(
                "Rerank response has no 'results' list",
                context={"keys": sorted(result.keys())},
            )
        try:
            return [RerankScore.model_validate(item) for item in items]
        except PydanticValidationError as e:
            raise ProviderUnavailableError(
                f"Malformed rerank result: {e}", code=self.error_code, cause=e
            ) from e
