"""Deep research: breadth-first expansion of an exploration tree."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid

from .citation import CitationCandidate
from .config import TreeConfig
from .errors import AdmissionError, BreadthExceededError
from .events import EventSink, EventType, notify
from .fetch_loop import AdaptiveFetchLoop
from .node import ExplorationNode, NodeStatus, ProcessedLearning
from .query_generator import MAX_PREVIOUS_LEARNINGS, ProposalContext, QueryGenerator
from .strategy import FetchingStrategy
from .tree import ExplorationTree, TreeStatus

logger = logging.getLogger(__name__)

# Characters of citation text kept as a learning
MAX_LEARNING_CHARS = 300


def learning_from_citation(citation: CitationCandidate) -> ProcessedLearning | None:
    """Turn a citation's snippet (or leading content) into a learning."""
    text = (citation.snippet or citation.content).strip()
    if not text:
        return None
    if len(text) > MAX_LEARNING_CHARS:
        text = text[:MAX_LEARNING_CHARS].rsplit(" ", 1)[0] + "..."
    return ProcessedLearning(
        url=citation.url,
        learning=text,
        title=citation.title,
        relevance_score=citation.relevance_score,
    )


class DeepResearchRunner:
    """
    Grows an exploration tree level by level.

    Each non-root node searches its label through the adaptive fetch loop,
    records citations and learnings, asks the query generator for children
    (while depth allows) and is marked complete. A failure inside one node
    marks that node ERROR; its siblings carry on.

    Usage:
        runner = DeepResearchRunner(AdaptiveFetchLoop(fetcher), AnthropicQueryGenerator())
        tree = await runner.run("How do mRNA vaccines work?")
    """

    def __init__(
        self,
        fetch_loop: AdaptiveFetchLoop,
        query_generator: QueryGenerator,
        tree_config: TreeConfig | None = None,
        strategy: FetchingStrategy | None = None,
        event_sink: EventSink | None = None,
    ):
        self.fetch_loop = fetch_loop
        self.query_generator = query_generator
        self.tree_config = tree_config or TreeConfig()
        self.strategy = strategy or FetchingStrategy()
        self.event_sink = event_sink

    def _emit(self, tree: ExplorationTree, node_id: str | None, event: EventType, **payload) -> None:
        notify(self.event_sink, tree.session_id, node_id, event, payload)

    def _advance(self, tree: ExplorationTree, node: ExplorationNode, status: NodeStatus) -> None:
        tree.update_status(node.id, status)
        self._emit(tree, node.id, EventType(status.value), status=status.value)

    def new_tree(self, query: str, session_id: str | None = None) -> ExplorationTree:
        return ExplorationTree(
            session_id or uuid.uuid4().hex,
            query,
            max_depth=self.tree_config.max_depth,
            breadth_per_level=self.tree_config.breadth_per_level,
        )

    async def run(self, query: str, session_id: str | None = None) -> ExplorationTree:
        """
        Run a full deep research session.

        Args:
            query: The root research question
            session_id: Optional id; a random one is generated otherwise

        Returns:
            The finished ExplorationTree (COMPLETED unless cancelled/failed)

        Raises:
            ValueError: If the query is blank
        """
        if not query or not query.strip():
            raise ValueError("Query cannot be empty")

        start = time.monotonic()
        tree = self.new_tree(query, session_id)
        logger.info(
            "Starting deep research session %s (depth %d, breadth %d)",
            tree.session_id, tree.max_depth, tree.breadth_per_level,
        )

        tree.set_status(TreeStatus.GENERATING_QUERIES)
        try:
            frontier = await self.expand(tree, tree.root)
        except Exception as e:
            tree.fail(f"Root query generation failed: {e}")
            self._emit(tree, tree.root.id, EventType.ERROR, message=str(e))
            logger.warning("Deep research session %s failed: %s", tree.session_id, e)
            return tree

        semaphore = asyncio.Semaphore(self.tree_config.max_concurrent_nodes)

        async def bounded(node: ExplorationNode) -> list[ExplorationNode]:
            async with semaphore:
                return await self.process_node(tree, node)

        level = 1
        while frontier:
            if tree.status in (TreeStatus.CANCELLED, TreeStatus.ERROR):
                logger.info("Session %s stopped at depth %d", tree.session_id, level)
                break
            tree.set_status(TreeStatus.SEARCHING)
            logger.info("Depth %d: researching %d nodes", level, len(frontier))
            next_levels = await asyncio.gather(*(bounded(n) for n in frontier))
            frontier = [child for children in next_levels for child in children]
            level += 1

        if tree.complete_if_drained():
            self._emit(
                tree, None, EventType.TREE_COMPLETE,
                statistics=tree.statistics(),
            )
        logger.info(
            "Deep research session %s finished: %d nodes, %d errors (%.1fs)",
            tree.session_id, len(tree), len(tree.error_nodes()), time.monotonic() - start,
        )
        return tree

    async def expand(self, tree: ExplorationTree, node: ExplorationNode) -> list[ExplorationNode]:
        """
        Ask the query generator for children of ``node`` and admit them.

        Returns the admitted children. Nodes already at max depth are not
        expanded. Admission failures are logged and reported as events.
        """
        depth = tree.depth(node.id)
        if depth >= tree.max_depth:
            logger.debug("Maximum depth reached for node %s, skipping query generation", node.id)
            return []

        previous = [
            learning.learning
            for path_node in tree.path(node.id)
            for learning in path_node.learnings
        ][-MAX_PREVIOUS_LEARNINGS:]
        context = ProposalContext(
            root_query=tree.root_query,
            depth=depth,
            max_depth=tree.max_depth,
            breadth=tree.breadth_per_level,
            previous_learnings=tuple(previous),
        )

        self._emit(tree, node.id, EventType.GENERATING_QUERY_REASONING, status="starting")
        proposals = await asyncio.to_thread(
            self.query_generator.propose_children, node.copy(), context,
        )

        children: list[ExplorationNode] = []
        for proposal in proposals:
            try:
                child = tree.admit_child(node.id, None, proposal.query, proposal.research_goal)
            except BreadthExceededError as e:
                logger.warning("Dropping extra proposals for node %s: %s", node.id, e)
                self._emit(tree, node.id, EventType.ERROR, message=str(e))
                break
            except AdmissionError as e:
                logger.warning("Failed to admit child for query %r: %s", proposal.query, e)
                self._emit(tree, node.id, EventType.ERROR, message=str(e))
                continue
            children.append(child)
            self._emit(
                tree, child.id, EventType.GENERATING_QUERY,
                parent_node_id=node.id, query=child.label, research_goal=child.research_goal,
            )
        return children

    async def process_node(self, tree: ExplorationTree, node: ExplorationNode) -> list[ExplorationNode]:
        """Search, learn and expand one node. Returns its admitted children."""
        tree.current_node_id = node.id
        try:
            self._advance(tree, node, NodeStatus.GENERATED_QUERY)

            self._advance(tree, node, NodeStatus.SEARCHING)
            citations = await self.fetch_loop.fetch_citations(node.label, self.strategy)
            tree.add_search_results(node.id, citations)
            self._advance(tree, node, NodeStatus.SEARCH_COMPLETE)

            self._advance(tree, node, NodeStatus.PROCESSING_SEARCH_RESULT)
            added = 0
            for citation in citations:
                learning = learning_from_citation(citation)
                if learning is not None and tree.add_learning(node.id, learning):
                    added += 1
            logger.info("Node %s: %d citations, %d learnings", node.id, len(citations), added)

            children: list[ExplorationNode] = []
            if tree.depth(node.id) < tree.max_depth:
                tree.update_status(node.id, NodeStatus.GENERATING_QUERY_REASONING)
                children = await self.expand(tree, node)

            tree.mark_complete(node.id)
            self._emit(
                tree, node.id, EventType.NODE_COMPLETE,
                citations=len(citations), learnings=added, children=len(children),
            )
            return children

        except Exception as e:
            # One node's failure must not abort its siblings
            tree.mark_error(node.id, str(e) or type(e).__name__)
            self._emit(tree, node.id, EventType.ERROR, message=str(e))
            return []
