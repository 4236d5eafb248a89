"""
Search Client: Serper Web and Video Search

Thin async client over the Serper search API used by the discovery tasks:
- POST /search for organic results, POST /videos for video results
- Transient failures (transport errors, 429, 5xx) retried with backoff
- Responses decoded into closed Pydantic envelopes
- Optional shared response cache keyed by endpoint and query
"""

from typing import List, Optional, Union

import httpx
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from core.exceptions import DiscoveryError
from optimization.cache_manager import ResponseCache, make_cache_key

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


# =============================================================================
# RESPONSE ENVELOPES
# =============================================================================


class SerperOrganicResult(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    title: str = ""
    link: str = ""
    snippet: Optional[str] = None
    date: Optional[str] = None


class SerperVideoResult(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    title: str = ""
    link: str = ""
    snippet: Optional[str] = None
    channel: Optional[str] = None
    views: Optional[Union[int, str]] = None
    duration: Optional[str] = None
    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    date: Optional[str] = None


class SerperSearchResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    organic: List[SerperOrganicResult] = Field(default_factory=list)


class SerperVideoResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    videos: List[SerperVideoResult] = Field(default_factory=list)


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS_CODES
    return isinstance(exc, httpx.TransportError)


def _log_retry(retry_state: RetryCallState) -> None:
    logger.warning(
        f"Retrying search request | attempt={retry_state.attempt_number} | "
        f"error={retry_state.outcome.exception()!r}"
    )


# =============================================================================
# CLIENT
# =============================================================================


class SerperSearchClient:
    """
    Serper API client.

    Raises DiscoveryError for any failure that survives the retry policy;
    callers decide whether that is fatal.
    """

    def __init__(
        self,
        base_url: str = "https://google.serper.dev",
        http_client: Optional[httpx.AsyncClient] = None,
        cache: Optional[ResponseCache] = None,
        max_attempts: int = 2,
        retry_backoff: float = 0.5,
        results_per_query: int = 10,
        country: str = "us",
        language: str = "en",
    ):
        self.base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient()
        self.cache = cache
        self.max_attempts = max_attempts
        self.retry_backoff = retry_backoff
        self.results_per_query = results_per_query
        self.country = country
        self.language = language

    async def search(self, query: str, api_key: str, timeout: float = 30.0) -> SerperSearchResponse:
        """Organic web results for a query."""
        data = await self._post("search", query, api_key, timeout)
        try:
            return SerperSearchResponse.model_validate(data)
        except ValidationError as e:
            raise DiscoveryError(f"Unreadable search response: {e}", query=query) from e

    async def videos(self, query: str, api_key: str, timeout: float = 20.0) -> SerperVideoResponse:
        """Video results for a query."""
        data = await self._post("videos", query, api_key, timeout)
        try:
            return SerperVideoResponse.model_validate(data)
        except ValidationError as e:
            raise DiscoveryError(f"Unreadable video response: {e}", query=query) from e

    async def _post(self, endpoint: str, query: str, api_key: str, timeout: float) -> dict:
        payload = {
            "q": query,
            "gl": self.country,
            "hl": self.language,
            "num": self.results_per_query,
        }

        @retry(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.retry_backoff, max=10),
            retry=retry_if_exception(_is_transient),
            before_sleep=_log_retry,
            reraise=True,
        )
        async def _execute() -> dict:
            response = await self._http_client.post(
                f"{self.base_url}/{endpoint}",
                json=payload,
                headers={"X-API-KEY": api_key, "Content-Type": "application/json"},
                timeout=timeout,
            )
            response.raise_for_status()
            return response.json()

        async def _fetch() -> dict:
            logger.debug(f"Search request | endpoint={endpoint} query={query!r}")
            try:
                return await _execute()
            except httpx.HTTPStatusError as e:
                raise DiscoveryError(
                    f"Search API returned HTTP {e.response.status_code}", query=query
                ) from e
            except httpx.HTTPError as e:
                raise DiscoveryError(f"Search API unreachable: {e}", query=query) from e
            except ValueError as e:
                raise DiscoveryError(f"Search API returned invalid JSON: {e}", query=query) from e

        if self.cache is None:
            return await _fetch()
        # Failures raise out of the factory and are never cached
        return await self.cache.get_or_set(make_cache_key(f"serper_{endpoint}", payload), _fetch)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http_client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
