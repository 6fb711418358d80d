"""Brave Search API client used to discover seed pages for a brand."""

import json
import logging
import os
from typing import Any, NamedTuple

from .fetcher import Fetcher
from .resolver import get_default_resolver


logger = logging.getLogger(__name__)


class SearchResult(NamedTuple):
    title: str
    url: str
    description: str = ""


class SearchResponse(NamedTuple):
    success: bool
    results: tuple[SearchResult, ...] = ()
    error: str | None = None


class BraveSearchClient:
    """Client for the Brave web search REST API."""

    SEARCH_ENDPOINT: str = "https://api.search.brave.com/res/v1/web/search"

    def __init__(
        self,
        fetcher: Fetcher,
        api_key: str | None = None,
        endpoint: str | None = None,
    ) -> None:
        self.fetcher = fetcher
        self._api_key = api_key or os.getenv("BRAVE_API_KEY")
        self.endpoint = endpoint or self.SEARCH_ENDPOINT

    async def search(self, query: str, max_results: int = 10) -> SearchResponse:
        """Search Brave and normalize results to title/url/description."""
        if not self._api_key:
            return SearchResponse(False, error="BRAVE_API_KEY environment variable is not set")

        response = await self.fetcher.get(
            self.endpoint,
            headers={
                "Accept": "application/json",
                "X-Subscription-Token": self._api_key,
            },
            params={"q": query, "count": str(max_results)},
        )
        if not response.ok:
            logger.warning(f"Brave search failed for '{query}': {response.describe()}")
            return SearchResponse(False, error=f"Request error: {response.describe()}")

        try:
            payload = json.loads(response.content)
        except ValueError as e:
            logger.warning(f"Brave search returned invalid JSON for '{query}': {e}")
            return SearchResponse(False, error=f"JSON parse error: {e}")

        results = self._parse_results(payload, max_results)
        logger.debug(f"Brave search for '{query}' returned {len(results)} results")
        return SearchResponse(True, results=tuple(results))

    @staticmethod
    def _parse_results(payload: Any, max_results: int) -> list[SearchResult]:
        web = payload.get("web") if isinstance(payload, dict) else None
        items = web.get("results") if isinstance(web, dict) else None
        if not isinstance(items, list):
            return []

        results = []
        for item in items[:max_results]:
            if not isinstance(item, dict) or not item.get("url"):
                continue
            results.append(
                SearchResult(
                    title=item.get("title") or "",
                    url=item["url"],
                    description=item.get("description") or "",
                )
            )
        return results


async def search_web(query: str, max_results: int = 10) -> SearchResponse:
    """Search the web using the Brave Search API."""
    client = BraveSearchClient(get_default_resolver().fetcher)
    return await client.search(query, max_results=max_results)
