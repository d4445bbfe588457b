"""Shared fixtures for adaptive_research tests."""

import random

import pytest

from adaptive_research.citation import CitationCandidate
from adaptive_research.strategy import DiversificationLevel, FetchingStrategy


def make_candidate(
    url: str,
    title: str = "A source",
    relevance: float = 0.8,
    content: str | None = None,
    snippet: str = "A short snippet about the topic.",
    **kwargs,
) -> CitationCandidate:
    """Build a candidate with enough content to pass the optimizer's filter."""
    if content is None:
        content = "Substantive content about the topic. " * 10
    return CitationCandidate(
        url=url, title=title, snippet=snippet, content=content,
        relevance_score=relevance, **kwargs,
    )


class FakeFetcher:
    """Async fetcher returning canned results per query, recording calls."""

    def __init__(self, responses=None, default=None, fail_on=()):
        self.responses = responses or {}
        self.default = default
        self.fail_on = set(fail_on)
        self.calls: list[str] = []

    async def search(self, query):
        self.calls.append(query)
        if query in self.fail_on:
            raise RuntimeError(f"provider failed for {query}")
        if query in self.responses:
            return list(self.responses[query])
        if callable(self.default):
            return self.default(query)
        return list(self.default or [])


@pytest.fixture
def candidate_factory():
    return make_candidate


@pytest.fixture
def rng():
    return random.Random(42)


@pytest.fixture
def basic_strategy():
    """BASIC level: 4 variations, so every round dispatches 3 queries."""
    return FetchingStrategy(
        target_citations=5,
        max_batches=2,
        diversification_level=DiversificationLevel.BASIC,
    )


@pytest.fixture
def mock_ddgs_results():
    """Factory for creating mock DuckDuckGo search results."""
    def _create_results(count: int = 3):
        return [
            {
                "title": f"Result {i}",
                "href": f"https://example{i}.com/page",
                "body": f"Snippet for result {i} with relevant information.",
            }
            for i in range(1, count + 1)
        ]
    return _create_results


@pytest.fixture
def mock_tavily_response():
    """Factory for creating mock Tavily search responses."""
    def _create_response(count: int = 3):
        return {
            "results": [
                {
                    "title": f"Tavily {i}",
                    "url": f"https://source{i}.org/article",
                    "content": f"Summary {i} of the article.",
                    "raw_content": f"Full text {i}. " * 50,
                    "score": 0.5,
                }
                for i in range(1, count + 1)
            ]
        }
    return _create_response
