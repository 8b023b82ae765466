"""
Shared aiohttp plumbing for the HTTP model providers.
"""

from typing import Any, Dict, Optional

import aiohttp

from nexusrag.core.exceptions import ProviderUnavailableError
from nexusrag.core.logging import logger
from nexusrag.core.utils.retry import retry_async


def is_transient(error: BaseException) -> bool:
    """Connection problems and 5xx are worth another try; 4xx are not."""
    if isinstance(error, aiohttp.ClientResponseError):
        return error.status >= 500
    return True


class JSONHTTPClient:
    """
    Lazy aiohttp session plus a retrying JSON POST.

    Subclasses set error_code and unavailable_hint for the
    ProviderUnavailableError raised once retries are exhausted.
    """

    error_code = "PROVIDER_NO_RESPONSE"
    unavailable_hint = "Check that the provider is reachable"

    def __init__(
        self,
        base_url: str,
        request_timeout: float,
        max_attempts: int,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.request_timeout = request_timeout
        self.max_attempts = max_attempts
        self.headers = headers or {}
        self._session: Optional[aiohttp.ClientSession] = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.request_timeout),
                headers=self.headers,
            )
        return self._session

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"

        async def _do_post() -> Dict[str, Any]:
            async with self._get_session().post(url, json=payload) as response:
                response.raise_for_status()
                result: Dict[str, Any] = await response.json()
                return result

        try:
            return await retry_async(
                _do_post,
                max_attempts=self.max_attempts,
                backoff="exponential",
                initial_delay=0.5,
                retry_on=(aiohttp.ClientError,),
                should_retry=is_transient,
                logger=logger,
            )
        except aiohttp.ClientError as e:
            exc = ProviderUnavailableError(
                f"Request to {url} failed: {e}",
                code=self.error_code,
                context={"url": url},
                cause=e,
            )
            exc.add_suggestion(self.unavailable_hint)
            raise exc from e

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
