"""Tests for breadth-first deep research over an exploration tree."""

import asyncio
import random

import pytest

from adaptive_research.citation import CitationCandidate
from adaptive_research.config import TreeConfig
from adaptive_research.deep_research import (
    MAX_LEARNING_CHARS,
    DeepResearchRunner,
    learning_from_citation,
)
from adaptive_research.errors import QueryGenerationError
from adaptive_research.events import EventType
from adaptive_research.fetch_loop import AdaptiveFetchLoop
from adaptive_research.node import NodeStatus
from adaptive_research.query_generator import ProposedQuery
from adaptive_research.strategy import DiversificationLevel, FetchingStrategy
from adaptive_research.tree import TreeStatus

from conftest import FakeFetcher, make_candidate

SMALL_STRATEGY = FetchingStrategy(
    target_citations=2,
    max_batches=1,
    diversification_level=DiversificationLevel.BASIC,
)


def _respond(query):
    slug = "".join(ch for ch in query.lower() if ch.isalnum())
    return [
        make_candidate(
            f"https://{slug}.com/{i}", relevance=0.9, snippet=f"Finding about {query}",
        )
        for i in range(2)
    ]


class FakeGenerator:
    """Proposes ``count`` children per node and records every context it sees."""

    def __init__(self, count=2, fail_for=()):
        self.count = count
        self.fail_for = set(fail_for)
        self.contexts = {}

    def propose_children(self, node, context):
        self.contexts[node.id] = context
        if node.id in self.fail_for:
            raise QueryGenerationError(f"model refused for {node.id}")
        base = context.root_query if node.is_root else node.label
        return [
            ProposedQuery(f"{base} angle {i}", f"goal {i} for {base}")
            for i in range(self.count)
        ]


class RecordingSink:
    def __init__(self):
        self.events = []

    def notify(self, session_id, node_id, event_type, payload):
        self.events.append((node_id, event_type, payload))

    def types(self):
        return [event_type for _, event_type, _ in self.events]


def _runner(generator, sink=None, fetcher=None, **tree_kwargs):
    config = TreeConfig(**{"max_depth": 2, "breadth_per_level": 2, **tree_kwargs})
    loop = AdaptiveFetchLoop(fetcher or FakeFetcher(default=_respond), rng=random.Random(5))
    return DeepResearchRunner(
        loop, generator, tree_config=config, strategy=SMALL_STRATEGY, event_sink=sink,
    )


class TestDeepResearchRunner:
    @pytest.mark.asyncio
    async def test_grows_full_tree(self):
        generator = FakeGenerator()
        sink = RecordingSink()
        tree = await _runner(generator, sink).run("battery recycling", session_id="s1")

        assert tree.session_id == "s1"
        assert len(tree) == 7
        assert tree.status == TreeStatus.COMPLETED
        assert tree.is_complete
        assert not tree.has_errors
        assert sorted(n.id for n in tree.nodes_at_depth(2)) == ["0-0-0", "0-0-1", "0-1-0", "0-1-1"]
        # Depth-2 nodes are never expanded
        assert set(generator.contexts) == {"0", "0-0", "0-1"}
        assert sink.types()[-1] == EventType.TREE_COMPLETE

    @pytest.mark.asyncio
    async def test_nodes_record_citations_and_learnings(self):
        tree = await _runner(FakeGenerator()).run("battery recycling")

        node = tree.get_node("0-0")
        assert node.label == "battery recycling angle 0"
        assert node.research_goal == "goal 0 for battery recycling"
        assert 1 <= len(node.search_results) <= SMALL_STRATEGY.target_citations
        assert len(node.learnings) == len(node.search_results)
        assert all(item.learning.startswith("Finding about") for item in node.learnings)
        assert tree.statistics()["total_learnings"] == sum(
            len(n.learnings) for n in tree.all_nodes()
        )

    @pytest.mark.asyncio
    async def test_children_see_path_learnings(self):
        generator = FakeGenerator()
        await _runner(generator).run("battery recycling")

        root_context = generator.contexts["0"]
        assert root_context.depth == 0
        assert root_context.previous_learnings == ()

        child_context = generator.contexts["0-0"]
        assert child_context.depth == 1
        assert child_context.max_depth == 2
        assert child_context.breadth == 2
        assert child_context.root_query == "battery recycling"
        assert child_context.previous_learnings
        assert all(text.startswith("Finding about") for text in child_context.previous_learnings)

    @pytest.mark.asyncio
    async def test_extra_proposals_are_refused(self):
        sink = RecordingSink()
        tree = await _runner(FakeGenerator(count=3), sink, max_depth=1).run("heat pumps")

        assert len(tree.children("0")) == 2
        errors = [p for node_id, t, p in sink.events if t == EventType.ERROR and node_id == "0"]
        assert errors and "Maximum breadth" in errors[0]["message"]
        assert tree.status == TreeStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_node_failure_does_not_abort_siblings(self):
        sink = RecordingSink()
        tree = await _runner(FakeGenerator(fail_for={"0-0"}), sink).run("heat pumps")

        failed = tree.get_node("0-0")
        assert failed.status == NodeStatus.ERROR
        assert "model refused" in failed.error_message
        assert tree.children("0-0") == []
        assert len(tree.children("0-1")) == 2
        assert all(n.is_completed for n in tree.children("0-1"))
        assert tree.status == TreeStatus.COMPLETED
        assert tree.has_errors
        assert (failed.id, EventType.ERROR) in [(n, t) for n, t, _ in sink.events]

    @pytest.mark.asyncio
    async def test_root_generation_failure_fails_tree(self):
        sink = RecordingSink()
        tree = await _runner(FakeGenerator(fail_for={"0"}), sink).run("heat pumps")

        assert tree.status == TreeStatus.ERROR
        assert "Root query generation failed" in tree.error_message
        assert len(tree) == 1
        assert EventType.TREE_COMPLETE not in sink.types()

    @pytest.mark.asyncio
    async def test_no_proposals_completes_immediately(self):
        tree = await _runner(FakeGenerator(count=0)).run("heat pumps")
        assert len(tree) == 1
        assert tree.status == TreeStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_fetch_failures_leave_nodes_complete(self):
        fetcher = FakeFetcher(default=_respond)
        fetcher.fail_on = _AlwaysContains()
        tree = await _runner(FakeGenerator(), fetcher=fetcher, max_depth=1).run("heat pumps")

        for child in tree.children("0"):
            assert child.is_completed
            assert child.search_results == []

    @pytest.mark.asyncio
    async def test_node_concurrency_is_bounded(self):
        labels = ["heat pumps angle 0", "heat pumps angle 1", "heat pumps angle 2"]
        active, peak = set(), {"value": 0}

        class TrackingFetcher:
            async def search(self, query):
                label = next(name for name in labels if name in query)
                active.add(label)
                peak["value"] = max(peak["value"], len(active))
                await asyncio.sleep(0.01)
                active.discard(label)
                return _respond(query)

        runner = _runner(
            FakeGenerator(count=3), fetcher=TrackingFetcher(),
            max_depth=1, breadth_per_level=3, max_concurrent_nodes=1,
        )
        tree = await runner.run("heat pumps")
        assert len(tree.children("0")) == 3
        assert peak["value"] == 1

    @pytest.mark.asyncio
    async def test_node_status_events_in_order(self):
        sink = RecordingSink()
        await _runner(FakeGenerator(), sink, max_depth=1).run("heat pumps")

        node_events = [t for node_id, t, _ in sink.events if node_id == "0-0"]
        assert node_events == [
            EventType.GENERATING_QUERY,
            EventType.GENERATED_QUERY,
            EventType.SEARCHING,
            EventType.SEARCH_COMPLETE,
            EventType.PROCESSING_SEARCH_RESULT,
            EventType.NODE_COMPLETE,
        ]

    @pytest.mark.asyncio
    async def test_blank_query(self):
        with pytest.raises(ValueError):
            await _runner(FakeGenerator()).run("  ")


class _AlwaysContains:
    def __contains__(self, item):
        return True


class TestLearningFromCitation:
    def test_uses_snippet(self):
        c = make_candidate("https://a.com", title="A", snippet="Key fact.", relevance=0.8)
        learning = learning_from_citation(c)
        assert learning.url == "https://a.com"
        assert learning.learning == "Key fact."
        assert learning.title == "A"
        assert learning.relevance_score == 0.8

    def test_falls_back_to_content_and_truncates(self):
        c = CitationCandidate("https://a.com", "A", content="word " * 200)
        learning = learning_from_citation(c)
        assert learning.learning.endswith("...")
        assert len(learning.learning) <= MAX_LEARNING_CHARS + 3

    def test_empty_text(self):
        assert learning_from_citation(CitationCandidate("https://a.com", "A")) is None
