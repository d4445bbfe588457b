"""Bounded exploration tree for deep research sessions.

The tree owns every node, keeps parent/child indices consistent, enforces
depth and breadth limits on admission, and tracks aggregate completion.
All mutations and snapshot reads go through a single re-entrant lock, so
the tree can be shared between worker threads of one session. Nodes handed
out by the tree are detached copies; status changes go through the tree
so the completion counters always match the node statuses.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from .errors import (
    BreadthExceededError,
    DepthExceededError,
    DuplicateNodeError,
    NodeNotFoundError,
    NodeStateError,
)
from .node import ROOT_NODE_ID, ExplorationNode, NodeStatus, ProcessedLearning

logger = logging.getLogger(__name__)


class TreeStatus(Enum):
    INITIALIZING = "initializing"
    GENERATING_QUERIES = "generating_queries"
    SEARCHING = "searching"
    PROCESSING_RESULTS = "processing_results"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"


# Statuses set from outside that completion bookkeeping must not overwrite
_FINAL_TREE_STATUSES = (TreeStatus.COMPLETED, TreeStatus.ERROR, TreeStatus.CANCELLED)


def child_node_id(parent_id: str, index: int) -> str:
    """Build a child id: ``"<parent>-<index>"`` (so "0-1", "0-1-0", ...)."""
    return f"{parent_id}-{index}"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ExplorationTree:
    """
    The node collection and admission gate for one research session.

    Usage:
        tree = ExplorationTree("session-1", "quantum error correction", max_depth=2, breadth_per_level=3)
        child = tree.admit_child("0", "0-0", "surface codes", "How do surface codes work?")
        tree.mark_complete(child.id)
    """

    def __init__(
        self,
        session_id: str,
        root_query: str,
        max_depth: int = 2,
        breadth_per_level: int = 3,
    ):
        if not session_id:
            raise ValueError("Session ID cannot be empty")
        if root_query is None:
            raise ValueError("Root query cannot be None")
        self.session_id = session_id
        self.root_query = root_query
        self.max_depth = max(1, max_depth)
        self.breadth_per_level = max(1, breadth_per_level)
        self.created_at = _now()
        self.completed_at: datetime | None = None
        self.error_message: str | None = None

        self._lock = threading.RLock()
        self._status = TreeStatus.INITIALIZING
        self._nodes: dict[str, ExplorationNode] = {}
        self._parent_to_children: dict[str, list[str]] = {}
        self._child_to_parent: dict[str, str] = {}

        root = ExplorationNode.create_root(session_id, root_query)
        self._nodes[root.id] = root
        self._total_nodes_created = 1
        self._terminal_nodes = 1  # root starts complete
        self._current_node_id = root.id

    # Admission

    def admit_child(
        self,
        parent_id: str,
        child_id: str | None,
        label: str,
        research_goal: str = "",
    ) -> ExplorationNode:
        """
        Add a child under ``parent_id`` if depth and breadth limits allow.

        Args:
            parent_id: Existing node to expand
            child_id: Id for the new node, or None to derive "<parent>-<index>"
            label: Short label (usually the search query)
            research_goal: What the child is meant to find out

        Returns:
            A snapshot of the new node, in GENERATING_QUERY

        Raises:
            NodeNotFoundError: Parent is unknown
            DepthExceededError: Parent depth is already max_depth
            BreadthExceededError: Parent already has breadth_per_level children
            DuplicateNodeError: child_id is already in the tree
        """
        with self._lock:
            parent = self._nodes.get(parent_id)
            if parent is None:
                raise NodeNotFoundError(f"Parent node not found: {parent_id}", parent_id=parent_id)

            if self._depth_unlocked(parent_id) >= self.max_depth:
                raise DepthExceededError(
                    f"Maximum depth reached: {self.max_depth}", parent_id=parent_id,
                )

            siblings = self._parent_to_children.get(parent_id, [])
            if len(siblings) >= self.breadth_per_level:
                raise BreadthExceededError(
                    f"Maximum breadth reached for parent {parent_id}: {self.breadth_per_level}",
                    parent_id=parent_id,
                )

            if child_id is None:
                child_id = child_node_id(parent_id, len(siblings))
            if child_id in self._nodes:
                raise DuplicateNodeError(f"Node already exists: {child_id}", parent_id=parent_id)

            child = ExplorationNode.create_child(
                child_id, self.session_id, parent_id, label, research_goal,
            )
            self._nodes[child_id] = child
            self._parent_to_children.setdefault(parent_id, []).append(child_id)
            self._child_to_parent[child_id] = parent_id
            parent.add_child_id(child_id)
            self._total_nodes_created += 1
            if self._status == TreeStatus.COMPLETED:
                # New work reopens a tree that had drained
                self._status = TreeStatus.GENERATING_QUERIES
                self.completed_at = None
            snapshot = child.copy()

        logger.debug("Admitted node %s under %s: %s", child_id, parent_id, label)
        return snapshot

    # Status bookkeeping

    def _require_node(self, node_id: str) -> ExplorationNode:
        node = self._nodes.get(node_id)
        if node is None:
            raise NodeNotFoundError(f"Node not found: {node_id}")
        return node

    def _record_terminal_unlocked(self) -> None:
        self._terminal_nodes += 1
        if self._terminal_nodes == len(self._nodes) and self._status not in _FINAL_TREE_STATUSES:
            self._status = TreeStatus.COMPLETED
            self.completed_at = _now()
            logger.info("Exploration tree %s completed (%d nodes)", self.session_id, len(self._nodes))

    def update_status(self, node_id: str, status: NodeStatus) -> ExplorationNode:
        """Advance a node's lifecycle. NODE_COMPLETE is routed through ``mark_complete``.

        Raises:
            NodeNotFoundError: Unknown node
            NodeStateError: Node is terminal, or status is ERROR (use mark_error)
        """
        if status == NodeStatus.NODE_COMPLETE:
            return self.mark_complete(node_id)
        with self._lock:
            node = self._require_node(node_id)
            node.update_status(status)
            return node.copy()

    def mark_complete(self, node_id: str) -> ExplorationNode:
        """Mark a node NODE_COMPLETE. No-op for nodes that are already terminal."""
        with self._lock:
            node = self._require_node(node_id)
            if node.is_terminal:
                logger.debug("Node %s already %s; ignoring completion", node_id, node.status.name)
                return node.copy()
            node.update_status(NodeStatus.NODE_COMPLETE)
            self._record_terminal_unlocked()
            return node.copy()

    def mark_error(self, node_id: str, message: str) -> ExplorationNode:
        """Mark a node ERROR with a message. No-op for nodes that are already terminal."""
        with self._lock:
            node = self._require_node(node_id)
            if node.is_terminal:
                logger.warning(
                    "Node %s already %s; dropping error: %s", node_id, node.status.name, message,
                )
                return node.copy()
            node.set_error(message)
            self._record_terminal_unlocked()
            snapshot = node.copy()
        logger.warning("Node %s failed: %s", node_id, message)
        return snapshot

    @property
    def status(self) -> TreeStatus:
        with self._lock:
            return self._status

    def set_status(self, status: TreeStatus) -> None:
        """Set a phase status (GENERATING_QUERIES, SEARCHING, ...).

        Raises:
            NodeStateError: If the tree is ERROR or CANCELLED and ``status``
                would leave that state.
        """
        with self._lock:
            if self._status in (TreeStatus.ERROR, TreeStatus.CANCELLED) and status != self._status:
                raise NodeStateError(f"Tree {self.session_id} is {self._status.name}")
            self._status = status

    def complete_if_drained(self) -> bool:
        """Mark the tree COMPLETED if every node is terminal. Returns True if complete."""
        with self._lock:
            if self._status == TreeStatus.COMPLETED:
                return True
            if self._status in _FINAL_TREE_STATUSES or not self.is_complete:
                return False
            self._status = TreeStatus.COMPLETED
            self.completed_at = _now()
            return True

    def cancel(self) -> None:
        with self._lock:
            if self._status not in _FINAL_TREE_STATUSES:
                self._status = TreeStatus.CANCELLED
                self.completed_at = _now()

    def fail(self, message: str) -> None:
        with self._lock:
            self._status = TreeStatus.ERROR
            self.error_message = message
            self.completed_at = _now()

    # Current node cursor

    @property
    def current_node_id(self) -> str:
        with self._lock:
            return self._current_node_id

    @current_node_id.setter
    def current_node_id(self, node_id: str) -> None:
        with self._lock:
            if node_id in self._nodes:
                self._current_node_id = node_id

    # Node mutation helpers (run under the tree lock)

    def add_search_results(self, node_id: str, results: list) -> None:
        with self._lock:
            self._require_node(node_id).add_search_results(results)

    def add_learning(self, node_id: str, learning: ProcessedLearning) -> bool:
        with self._lock:
            return self._require_node(node_id).add_learning(learning)

    def set_node_metadata(self, node_id: str, key: str, value: Any) -> None:
        with self._lock:
            self._require_node(node_id).set_metadata(key, value)

    # Traversal (derived views over the indices; nodes are returned as snapshots)

    def _ordered_unlocked(self) -> list[ExplorationNode]:
        return sorted(self._nodes.values(), key=lambda n: n.created_at)

    def get_node(self, node_id: str) -> ExplorationNode | None:
        with self._lock:
            node = self._nodes.get(node_id)
            return node.copy() if node is not None else None

    @property
    def root(self) -> ExplorationNode:
        with self._lock:
            return self._nodes[ROOT_NODE_ID].copy()

    def children(self, node_id: str) -> list[ExplorationNode]:
        with self._lock:
            return [self._nodes[c].copy() for c in self._parent_to_children.get(node_id, [])]

    def parent(self, node_id: str) -> ExplorationNode | None:
        with self._lock:
            parent_id = self._child_to_parent.get(node_id)
            return self._nodes[parent_id].copy() if parent_id is not None else None

    def siblings(self, node_id: str) -> list[ExplorationNode]:
        with self._lock:
            parent_id = self._child_to_parent.get(node_id)
            if parent_id is None:
                return []
            return [n for n in self.children(parent_id) if n.id != node_id]

    def path(self, node_id: str) -> list[ExplorationNode]:
        """Nodes from the root down to ``node_id`` (empty for unknown ids)."""
        with self._lock:
            path: list[ExplorationNode] = []
            current: str | None = node_id
            while current is not None and current in self._nodes:
                path.append(self._nodes[current].copy())
                current = self._child_to_parent.get(current)
            path.reverse()
            return path

    def _depth_unlocked(self, node_id: str) -> int:
        depth = 0
        current = node_id
        while current in self._child_to_parent:
            current = self._child_to_parent[current]
            depth += 1
        return depth

    def depth(self, node_id: str) -> int:
        """Distance from the root (root is 0).

        Raises:
            NodeNotFoundError: Unknown node
        """
        with self._lock:
            self._require_node(node_id)
            return self._depth_unlocked(node_id)

    def max_current_depth(self) -> int:
        with self._lock:
            return max(self._depth_unlocked(n) for n in self._nodes)

    def all_nodes(self) -> list[ExplorationNode]:
        with self._lock:
            return [n.copy() for n in self._ordered_unlocked()]

    def nodes_at_depth(self, depth: int) -> list[ExplorationNode]:
        with self._lock:
            return [
                n.copy() for n in self._ordered_unlocked()
                if self._depth_unlocked(n.id) == depth
            ]

    def leaf_nodes(self) -> list[ExplorationNode]:
        with self._lock:
            return [
                n.copy() for n in self._ordered_unlocked()
                if not self._parent_to_children.get(n.id)
            ]

    def nodes_by_status(self, *statuses: NodeStatus) -> list[ExplorationNode]:
        with self._lock:
            return [n.copy() for n in self._ordered_unlocked() if n.status in statuses]

    def completed_nodes(self) -> list[ExplorationNode]:
        return self.nodes_by_status(NodeStatus.NODE_COMPLETE)

    def error_nodes(self) -> list[ExplorationNode]:
        return self.nodes_by_status(NodeStatus.ERROR)

    def processing_nodes(self) -> list[ExplorationNode]:
        with self._lock:
            return [n.copy() for n in self._ordered_unlocked() if n.is_processing]

    # Aggregates

    def __len__(self) -> int:
        with self._lock:
            return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        with self._lock:
            return node_id in self._nodes

    @property
    def total_nodes_created(self) -> int:
        with self._lock:
            return self._total_nodes_created

    @property
    def completed_node_count(self) -> int:
        """Nodes in a terminal state (complete or errored)."""
        with self._lock:
            return self._terminal_nodes

    @property
    def is_complete(self) -> bool:
        with self._lock:
            return all(n.is_terminal for n in self._nodes.values())

    @property
    def has_errors(self) -> bool:
        with self._lock:
            return any(n.has_error for n in self._nodes.values())

    def completion_percentage(self) -> float:
        """Terminal nodes as a percentage of all nodes created."""
        with self._lock:
            if self._total_nodes_created == 0:
                return 0.0
            return self._terminal_nodes / self._total_nodes_created * 100.0

    def all_learnings(self) -> list[ProcessedLearning]:
        """Learnings from completed nodes, one per URL, most relevant first."""
        with self._lock:
            seen_urls: set[str] = set()
            learnings: list[ProcessedLearning] = []
            for node in self.completed_nodes():
                for learning in node.learnings:
                    if learning.url and learning.url not in seen_urls:
                        seen_urls.add(learning.url)
                        learnings.append(learning)
        learnings.sort(key=lambda item: item.relevance_score, reverse=True)
        return learnings

    def statistics(self) -> dict[str, Any]:
        """Snapshot of session counters, taken under the tree lock."""
        with self._lock:
            stats: dict[str, Any] = {
                "session_id": self.session_id,
                "root_query": self.root_query,
                "status": self._status.value,
                "created_at": self.created_at.isoformat(),
                "completed_at": self.completed_at.isoformat() if self.completed_at else None,
                "total_nodes": self._total_nodes_created,
                "completed_nodes": sum(n.is_completed for n in self._nodes.values()),
                "error_nodes": sum(n.has_error for n in self._nodes.values()),
                "processing_nodes": sum(n.is_processing for n in self._nodes.values()),
                "total_learnings": sum(len(n.learnings) for n in self._nodes.values()),
                "max_depth": self.max_depth,
                "breadth_per_level": self.breadth_per_level,
                "current_depth": self.max_current_depth(),
                "completion_percentage": self.completion_percentage(),
            }
            end = self.completed_at or _now()
            key = "total_duration_seconds" if self.completed_at else "elapsed_seconds"
            stats[key] = (end - self.created_at).total_seconds()
            return stats

    def _node_view(self, node: ExplorationNode) -> dict[str, Any]:
        view = node.to_dict()
        children = self.children(node.id)
        if children:
            view["children"] = [self._node_view(c) for c in children]
        return view

    def to_tree_view(self) -> dict[str, Any]:
        """Nested dict of public node fields for presentation layers."""
        with self._lock:
            return {
                "session_id": self.session_id,
                "status": self._status.value,
                "root_node": self._node_view(self.root),
                "statistics": self.statistics(),
            }

    def __repr__(self) -> str:
        return (
            f"ExplorationTree(session_id={self.session_id!r}, status={self.status.name}, "
            f"nodes={self.total_nodes_created}, completed={self.completed_node_count}, "
            f"max_depth={self.max_depth})"
        )
