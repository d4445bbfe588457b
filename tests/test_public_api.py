"""Tests for the public API: fetch_citations and run_deep_research (sync and async)."""

import random
import sys
from unittest.mock import patch

import pytest

import adaptive_research
from adaptive_research import (
    CitationCandidate,
    ExplorationTree,
    FetchingStrategy,
    ResearchError,
    TreeConfig,
    TreeStatus,
    fetch_citations,
    fetch_citations_async,
    run_deep_research,
    run_deep_research_async,
)
from adaptive_research.query_generator import ProposedQuery

from conftest import FakeFetcher, make_candidate


def _respond(query):
    slug = "".join(ch for ch in query.lower() if ch.isalnum())
    return [make_candidate(f"https://{slug}{i}.com/", relevance=0.9) for i in range(3)]


class OneChildGenerator:
    def propose_children(self, node, context):
        return [ProposedQuery(f"{context.root_query} follow-up")]


class TestVersion:
    def test_version_is_set(self):
        assert adaptive_research.__version__ == "0.1.0"

    @pytest.mark.skipif(sys.version_info < (3, 11), reason="tomllib requires 3.11+")
    def test_version_matches_pyproject(self):
        import tomllib
        from pathlib import Path

        pyproject = Path(__file__).parent.parent / "pyproject.toml"
        with open(pyproject, "rb") as f:
            data = tomllib.load(f)
        assert adaptive_research.__version__ == data["project"]["version"]


class TestAll:
    def test_all_names_resolve(self):
        for name in adaptive_research.__all__:
            assert hasattr(adaptive_research, name), name

    def test_entry_points_exported(self):
        assert {
            "fetch_citations", "fetch_citations_async",
            "run_deep_research", "run_deep_research_async",
        } <= set(adaptive_research.__all__)


class TestFetchCitations:
    def test_empty_query_raises(self):
        with pytest.raises(ResearchError, match="Query cannot be empty"):
            fetch_citations("   ", fetcher=FakeFetcher())

    def test_returns_bounded_citations(self):
        strategy = FetchingStrategy(target_citations=4, max_batches=2)
        result = fetch_citations(
            "geothermal", strategy, fetcher=FakeFetcher(default=_respond), rng=random.Random(2),
        )
        assert len(result) == 4
        assert all(isinstance(c, CitationCandidate) for c in result)

    def test_defaults_to_tavily_fetcher(self):
        with patch("adaptive_research.TavilyCitationFetcher",
                   return_value=FakeFetcher(default=_respond)) as fetcher_cls:
            result = fetch_citations("geothermal")
        fetcher_cls.assert_called_once_with()
        assert 1 <= len(result) <= FetchingStrategy().target_citations

    @pytest.mark.asyncio
    async def test_sync_version_refuses_running_loop(self):
        with pytest.raises(ResearchError, match="fetch_citations_async"):
            fetch_citations("geothermal", fetcher=FakeFetcher())

    @pytest.mark.asyncio
    async def test_async_version(self):
        result = await fetch_citations_async(
            "geothermal", fetcher=FakeFetcher(default=_respond), rng=random.Random(2),
        )
        assert result


class TestRunDeepResearch:
    def test_empty_query_raises(self):
        with pytest.raises(ResearchError, match="Query cannot be empty"):
            run_deep_research("", fetcher=FakeFetcher(), query_generator=OneChildGenerator())

    def test_returns_completed_tree(self):
        tree = run_deep_research(
            "geothermal",
            tree_config=TreeConfig(max_depth=1),
            fetcher=FakeFetcher(default=_respond),
            query_generator=OneChildGenerator(),
        )
        assert isinstance(tree, ExplorationTree)
        assert tree.status == TreeStatus.COMPLETED
        assert [n.label for n in tree.children("0")] == ["geothermal follow-up"]

    @pytest.mark.asyncio
    async def test_sync_version_refuses_running_loop(self):
        with pytest.raises(ResearchError, match="run_deep_research_async"):
            run_deep_research("geothermal", fetcher=FakeFetcher(), query_generator=OneChildGenerator())

    @pytest.mark.asyncio
    async def test_async_version(self):
        tree = await run_deep_research_async(
            "geothermal",
            tree_config=TreeConfig(max_depth=2, breadth_per_level=1),
            fetcher=FakeFetcher(default=_respond),
            query_generator=OneChildGenerator(),
        )
        assert len(tree) == 3
        assert tree.is_complete
