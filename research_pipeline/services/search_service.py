"""Web search through the Serper API."""

import time
from typing import Any, List, Protocol

import httpx
import logfire
from pydantic import ValidationError

from research_pipeline.config import Settings, get_settings
from research_pipeline.constants import (
    DEFAULT_SEARCH_RESULT_LIMIT,
    SEARCH_TIMEOUT_SECONDS,
    SERPER_SEARCH_URL,
)
from research_pipeline.logging_config import mask_secret
from research_pipeline.models.scraper_models import SearchResult


class SearchError(Exception):
    """Raised when a web search cannot be completed."""

    pass


class SearchClient(Protocol):
    """Protocol for web search providers."""

    async def search(self, query: str) -> List[SearchResult]:
        ...


class SerperSearchClient:
    """Search the web with Serper (google.serper.dev)."""

    def __init__(
        self,
        api_key: str | None,
        max_results: int = DEFAULT_SEARCH_RESULT_LIMIT,
        timeout: float = SEARCH_TIMEOUT_SECONDS,
        base_url: str = SERPER_SEARCH_URL,
    ):
        """
        Initialize the search client.

        Args:
            api_key: Serper API key
            max_results: Maximum number of organic results returned
            timeout: Request timeout in seconds
            base_url: Search endpoint
        """
        self.api_key = api_key
        self.max_results = max_results
        self.timeout = timeout
        self.base_url = base_url

    async def search(self, query: str) -> List[SearchResult]:
        """
        Run a web search.

        Args:
            query: Search query

        Returns:
            Up to max_results organic results, in provider order

        Raises:
            SearchError: If the key is missing, the request fails or the API
                reports an error
        """
        if not self.api_key:
            raise SearchError("Serper API key is not configured (SERPER_API_KEY)")
        if not query or not query.strip():
            raise SearchError("Search query must not be empty")

        start_time = time.time()
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self.base_url,
                    headers={
                        "X-API-KEY": self.api_key,
                        "Content-Type": "application/json",
                    },
                    json={"q": query},
                )
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as e:
            logfire.error(
                "Serper search request rejected",
                status_code=e.response.status_code,
                api_key=mask_secret(self.api_key),
                query_length=len(query),
            )
            raise SearchError(
                f"Search request failed with status {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            logfire.error(
                "Serper search request failed",
                error=str(e),
                error_type=type(e).__name__,
                response_time_ms=(time.time() - start_time) * 1000,
            )
            raise SearchError(f"Search request failed: {e}") from e

        results = self._parse(payload)
        logfire.info(
            "Web search completed",
            result_count=len(results),
            response_time_ms=(time.time() - start_time) * 1000,
        )
        return results

    def _parse(self, payload: Any) -> List[SearchResult]:
        if not isinstance(payload, dict):
            raise SearchError("Unexpected search response format")
        if payload.get("error") or (payload.get("message") and "organic" not in payload):
            message = payload.get("error") or payload.get("message")
            raise SearchError(f"Search API error: {message}")

        results: List[SearchResult] = []
        for item in payload.get("organic") or []:
            if len(results) >= self.max_results:
                break
            try:
                results.append(SearchResult.model_validate(item))
            except ValidationError:
                logfire.debug("Skipping malformed search result", item=str(item)[:200])
        return results


# Factory function for dependency injection
def get_search_client(settings: Settings | None = None) -> SerperSearchClient:
    """Get the configured search client."""
    settings = settings or get_settings()
    return SerperSearchClient(
        api_key=settings.serper_api_key,
        max_results=settings.search_result_limit,
        timeout=settings.search_timeout_seconds,
    )
