"""Adaptive research: quality-driven citation fetching and bounded deep research trees."""

__version__ = "0.1.0"

import asyncio
import random

from .citation import CitationCandidate
from .config import FetchThresholds, TreeConfig
from .deep_research import DeepResearchRunner
from .errors import (
    AdmissionError,
    BreadthExceededError,
    DepthExceededError,
    DuplicateNodeError,
    ExportError,
    NodeNotFoundError,
    NodeStateError,
    QueryGenerationError,
    ResearchError,
    SearchError,
    TreeError,
)
from .events import EventSink, EventType, LoggingEventSink, NullEventSink
from .fetch_loop import AdaptiveFetchLoop, CitationFetcher, FetchOutcome
from .node import ExplorationNode, NodeStatus, ProcessedLearning
from .optimizer import optimize_citations
from .quality import QualityAssessment, assess_quality, should_continue_fetching
from .query_generator import AnthropicQueryGenerator, ProposalContext, ProposedQuery, QueryGenerator
from .search import TavilyCitationFetcher
from .strategy import (
    DiversificationLevel,
    FetchingStrategy,
    QueryAnalysis,
    UserProfile,
    determine_strategy,
)
from .tree import ExplorationTree, TreeStatus
from .variations import generate_query_variations

__all__ = [
    "AdaptiveFetchLoop",
    "AdmissionError",
    "AnthropicQueryGenerator",
    "BreadthExceededError",
    "CitationCandidate",
    "CitationFetcher",
    "DeepResearchRunner",
    "DepthExceededError",
    "DiversificationLevel",
    "DuplicateNodeError",
    "EventSink",
    "EventType",
    "ExplorationNode",
    "ExplorationTree",
    "ExportError",
    "FetchOutcome",
    "FetchThresholds",
    "FetchingStrategy",
    "LoggingEventSink",
    "NodeNotFoundError",
    "NodeStateError",
    "NodeStatus",
    "NullEventSink",
    "ProcessedLearning",
    "ProposalContext",
    "ProposedQuery",
    "QualityAssessment",
    "QueryAnalysis",
    "QueryGenerationError",
    "QueryGenerator",
    "ResearchError",
    "SearchError",
    "TavilyCitationFetcher",
    "TreeConfig",
    "TreeError",
    "TreeStatus",
    "UserProfile",
    "assess_quality",
    "determine_strategy",
    "fetch_citations",
    "fetch_citations_async",
    "generate_query_variations",
    "optimize_citations",
    "run_deep_research",
    "run_deep_research_async",
    "should_continue_fetching",
]


def fetch_citations(
    query: str,
    strategy: FetchingStrategy | None = None,
    fetcher: CitationFetcher | None = None,
    thresholds: FetchThresholds | None = None,
    rng: random.Random | None = None,
) -> list[CitationCandidate]:
    """Fetch an optimized, bounded list of citations for a query.

    Args:
        query: The search query.
        strategy: Fetching strategy; defaults to ``determine_strategy()``.
        fetcher: Citation source; defaults to TavilyCitationFetcher
            (TAVILY_API_KEY, falling back to DuckDuckGo).
        thresholds: Quality/diversity thresholds and fetch limits.
        rng: Random source for query and citation sampling.

    Returns:
        At most ``strategy.target_citations`` citations.

    Raises:
        ResearchError: If the query is empty or this is called from a
            running event loop.
    """
    try:
        return asyncio.run(fetch_citations_async(
            query, strategy=strategy, fetcher=fetcher, thresholds=thresholds, rng=rng,
        ))
    except RuntimeError as e:
        if "cannot be called from a running event loop" in str(e):
            raise ResearchError(
                "fetch_citations() cannot be called from async context. "
                "Use 'await fetch_citations_async()' instead."
            ) from e
        raise


async def fetch_citations_async(
    query: str,
    strategy: FetchingStrategy | None = None,
    fetcher: CitationFetcher | None = None,
    thresholds: FetchThresholds | None = None,
    rng: random.Random | None = None,
) -> list[CitationCandidate]:
    """Async version of fetch_citations for use in async contexts."""
    if not query or not query.strip():
        raise ResearchError("Query cannot be empty")

    loop = AdaptiveFetchLoop(fetcher or TavilyCitationFetcher(), thresholds, rng=rng)
    return await loop.fetch_citations(query, strategy or determine_strategy())


def run_deep_research(
    query: str,
    tree_config: TreeConfig | None = None,
    strategy: FetchingStrategy | None = None,
    fetcher: CitationFetcher | None = None,
    query_generator: QueryGenerator | None = None,
    event_sink: EventSink | None = None,
) -> ExplorationTree:
    """Run a tree-structured deep research session and return the tree.

    Requires ANTHROPIC_API_KEY unless a ``query_generator`` is supplied.

    Raises:
        ResearchError: If the query is empty or this is called from a
            running event loop.
    """
    try:
        return asyncio.run(run_deep_research_async(
            query, tree_config=tree_config, strategy=strategy, fetcher=fetcher,
            query_generator=query_generator, event_sink=event_sink,
        ))
    except RuntimeError as e:
        if "cannot be called from a running event loop" in str(e):
            raise ResearchError(
                "run_deep_research() cannot be called from async context. "
                "Use 'await run_deep_research_async()' instead."
            ) from e
        raise


async def run_deep_research_async(
    query: str,
    tree_config: TreeConfig | None = None,
    strategy: FetchingStrategy | None = None,
    fetcher: CitationFetcher | None = None,
    query_generator: QueryGenerator | None = None,
    event_sink: EventSink | None = None,
) -> ExplorationTree:
    """Async version of run_deep_research for use in async contexts."""
    if not query or not query.strip():
        raise ResearchError("Query cannot be empty")

    runner = DeepResearchRunner(
        AdaptiveFetchLoop(fetcher or TavilyCitationFetcher()),
        query_generator or AnthropicQueryGenerator(),
        tree_config=tree_config,
        strategy=strategy,
        event_sink=event_sink,
    )
    return await runner.run(query)
