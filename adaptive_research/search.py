"""Citation fetching with Tavily and DuckDuckGo fallback support."""

import logging
import os
import random
import time

from ddgs import DDGS
from ddgs.exceptions import DDGSException, RatelimitException

from .citation import CitationCandidate
from .errors import SearchError
from .scoring import enhance_relevance

logger = logging.getLogger(__name__)

# Maximum results requested per provider call
DEFAULT_MAX_RESULTS = 10

# Content kept per citation (characters)
MAX_CONTENT_LENGTH = 10_000

# DuckDuckGo has no relevance score; rank 1 gets this, decaying per position
DDG_BASE_SCORE = 0.6
DDG_RANK_DECAY = 0.03


def _truncate_at_sentence(text: str, max_length: int = MAX_CONTENT_LENGTH) -> str:
    """Trim text to ``max_length``, preferring to cut at a sentence boundary."""
    if len(text) <= max_length:
        return text
    cut = text[:max_length]
    boundary = cut.rfind(". ")
    if boundary > max_length // 2:
        return cut[:boundary + 1]
    return cut


class TavilyCitationFetcher:
    """
    CitationFetcher backed by Tavily, falling back to DuckDuckGo.

    Tries Tavily first if an API key is available (argument or
    TAVILY_API_KEY), falls back to DuckDuckGo on failure or when no key
    is configured. Relevance scores are boosted against the query before
    results are returned.
    """

    def __init__(
        self,
        api_key: str | None = None,
        max_results: int = DEFAULT_MAX_RESULTS,
        include_raw_content: bool = True,
        ddg_retries: int = 2,
    ):
        self.api_key = api_key or os.environ.get("TAVILY_API_KEY")
        self.max_results = max_results
        self.include_raw_content = include_raw_content
        self.ddg_retries = ddg_retries

    def search(self, query: str) -> list[CitationCandidate]:
        """
        Search a query and return citation candidates.

        Raises:
            SearchError: If both providers fail or return nothing
        """
        if not query or not query.strip():
            raise SearchError("Query cannot be empty")

        results: list[CitationCandidate] = []
        if self.api_key:
            try:
                results = self._search_tavily(query)
                if not results:
                    logger.warning("Tavily returned no results, falling back to DuckDuckGo")
            except Exception as e:
                logger.warning("Tavily search failed: %s, falling back to DuckDuckGo", e)

        if not results:
            results = self._search_duckduckgo(query)

        if not results:
            raise SearchError(f"No results found for query: {query}")

        return enhance_relevance(results, query)

    def _search_tavily(self, query: str) -> list[CitationCandidate]:
        """Search using the Tavily API (optimized for AI/RAG workloads)."""
        # Import here to avoid requiring tavily-python when not used
        from tavily import TavilyClient

        client = TavilyClient(api_key=self.api_key)
        response = client.search(
            query=query,
            max_results=self.max_results,
            search_depth="advanced" if self.include_raw_content else "basic",
            include_raw_content=self.include_raw_content,
        )

        results = []
        for item in response.get("results", []):
            url = item.get("url")
            if not url:
                continue
            snippet = item.get("content") or ""
            content = item.get("raw_content") or snippet
            results.append(CitationCandidate(
                url=url,
                title=item.get("title") or "",
                snippet=snippet[:500],
                content=_truncate_at_sentence(content),
                relevance_score=float(item.get("score") or 0.5),
                source="tavily",
            ))

        logger.info("Tavily returned %d results", len(results))
        return results

    def _search_duckduckgo(self, query: str) -> list[CitationCandidate]:
        """Search using DuckDuckGo with retry logic."""
        last_error = None

        for attempt in range(self.ddg_retries + 1):
            try:
                with DDGS() as ddgs:
                    raw_results = list(ddgs.text(query, max_results=self.max_results))

                results = []
                for rank, r in enumerate(x for x in raw_results if x.get("href")):
                    body = r.get("body", "")
                    results.append(CitationCandidate(
                        url=r["href"],
                        title=r.get("title", ""),
                        snippet=body[:500],
                        content=body,
                        relevance_score=max(0.1, DDG_BASE_SCORE - rank * DDG_RANK_DECAY),
                        source="duckduckgo",
                    ))
                return results

            except (DDGSException, RatelimitException) as e:
                last_error = e
                if attempt < self.ddg_retries:
                    # Exponential backoff with jitter: 2s, 4s, ... plus 0-1s
                    wait_time = 2 ** attempt * 2 + random.uniform(0, 1)
                    logger.warning("Search rate limited, waiting %.1fs...", wait_time)
                    time.sleep(wait_time)
                continue

            except (ConnectionError, TimeoutError, OSError) as e:
                last_error = e
                break

        if last_error:
            raise SearchError(f"Search failed: {last_error}")

        return []
