"""Exploration node: one unit of recursive research inside a tree."""

from __future__ import annotations

import copy as _copy
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from .citation import CitationCandidate
from .errors import NodeStateError

ROOT_NODE_ID = "0"
ROOT_LABEL = "Start"


class NodeStatus(Enum):
    GENERATING_QUERY = "generating_query"
    GENERATED_QUERY = "generated_query"
    SEARCHING = "searching"
    SEARCH_COMPLETE = "search_complete"
    PROCESSING_SEARCH_RESULT = "processing_search_result"
    PROCESSING_SEARCH_RESULT_REASONING = "processing_search_result_reasoning"
    GENERATING_QUERY_REASONING = "generating_query_reasoning"
    NODE_COMPLETE = "node_complete"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (NodeStatus.NODE_COMPLETE, NodeStatus.ERROR)


@dataclass(frozen=True, eq=False)
class ProcessedLearning:
    """A finding extracted from one search result.

    Equality (and hashing) is by ``(url, learning)`` so the same finding
    from the same source is only recorded once per node.
    """
    url: str
    learning: str
    title: str = ""
    relevance_score: float = 1.0

    @property
    def key(self) -> tuple[str, str]:
        return (self.url, self.learning)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ProcessedLearning):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ExplorationNode:
    """
    A single research step: a query, its search results and its learnings.

    Nodes are owned by an ExplorationTree; the tree holds the lock that
    serializes mutations. Once a node reaches NODE_COMPLETE or ERROR its
    status can no longer change.
    """

    def __init__(
        self,
        node_id: str,
        session_id: str,
        label: str,
        parent_id: str | None = None,
        research_goal: str = "",
        status: NodeStatus = NodeStatus.GENERATING_QUERY,
    ):
        if not node_id:
            raise ValueError("Node ID cannot be empty")
        if not session_id:
            raise ValueError("Session ID cannot be empty")
        if label is None:
            raise ValueError("Label cannot be None")
        self.id = node_id
        self.session_id = session_id
        self.parent_id = parent_id
        self.label = label
        self.research_goal = research_goal
        self.status = status
        self.error_message: str | None = None
        self.generate_queries_reasoning = ""
        self.generate_learnings_reasoning = ""
        self._search_results: list[CitationCandidate] = []
        self._learnings: list[ProcessedLearning] = []
        self._learning_keys: set[tuple[str, str]] = set()
        self._child_ids: list[str] = []
        self._metadata: dict[str, Any] = {}
        self.created_at = _now()
        self.updated_at = self.created_at

    @classmethod
    def create_root(cls, session_id: str, query: str) -> ExplorationNode:
        """Root node: represents the originating query, already complete."""
        return cls(
            ROOT_NODE_ID, session_id, ROOT_LABEL,
            research_goal=query, status=NodeStatus.NODE_COMPLETE,
        )

    @classmethod
    def create_child(
        cls,
        node_id: str,
        session_id: str,
        parent_id: str,
        label: str,
        research_goal: str,
    ) -> ExplorationNode:
        return cls(node_id, session_id, label, parent_id=parent_id, research_goal=research_goal)

    def _touch(self) -> None:
        self.updated_at = _now()

    # Relationships

    @property
    def is_root(self) -> bool:
        return self.id == ROOT_NODE_ID

    @property
    def is_leaf(self) -> bool:
        return not self._child_ids

    @property
    def child_ids(self) -> list[str]:
        return list(self._child_ids)

    def add_child_id(self, child_id: str) -> None:
        if child_id not in self._child_ids:
            self._child_ids.append(child_id)
            self._touch()

    # Status

    @property
    def is_completed(self) -> bool:
        return self.status == NodeStatus.NODE_COMPLETE

    @property
    def has_error(self) -> bool:
        return self.status == NodeStatus.ERROR

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def is_processing(self) -> bool:
        return not self.status.is_terminal

    def update_status(self, status: NodeStatus) -> None:
        """Move to ``status``.

        Raises:
            NodeStateError: If the node is already terminal, or if
                ``status`` is ERROR (use ``set_error`` so a message is kept).
        """
        if self.is_terminal:
            raise NodeStateError(
                f"Node {self.id} is {self.status.name}; cannot move to {status.name}"
            )
        if status == NodeStatus.ERROR:
            raise NodeStateError("Use set_error() to move a node to ERROR")
        self.status = status
        self._touch()

    def set_error(self, message: str) -> None:
        """Move to ERROR from any non-terminal state."""
        if self.is_terminal:
            raise NodeStateError(f"Node {self.id} is {self.status.name}; cannot set error")
        self.status = NodeStatus.ERROR
        self.error_message = message
        self._touch()

    # Reasoning streams

    def append_generate_queries_reasoning(self, delta: str) -> None:
        self.generate_queries_reasoning += delta
        self._touch()

    def append_generate_learnings_reasoning(self, delta: str) -> None:
        self.generate_learnings_reasoning += delta
        self._touch()

    # Results and learnings

    @property
    def search_results(self) -> list[CitationCandidate]:
        return list(self._search_results)

    def add_search_results(self, results: list[CitationCandidate]) -> None:
        self._search_results.extend(results)
        self._touch()

    @property
    def learnings(self) -> list[ProcessedLearning]:
        return list(self._learnings)

    def add_learning(self, learning: ProcessedLearning) -> bool:
        """Append a learning unless the same (url, text) pair is present.

        Returns:
            True if the learning was added.
        """
        if learning.key in self._learning_keys:
            return False
        self._learning_keys.add(learning.key)
        self._learnings.append(learning)
        self._touch()
        return True

    # Metadata

    @property
    def metadata(self) -> dict[str, Any]:
        return dict(self._metadata)

    def set_metadata(self, key: str, value: Any) -> None:
        self._metadata[key] = value
        self._touch()

    def get_metadata(self, key: str, default: Any = None) -> Any:
        return self._metadata.get(key, default)

    def copy(self) -> ExplorationNode:
        """Detached snapshot; mutating it does not affect the tree."""
        clone = _copy.copy(self)
        clone._search_results = list(self._search_results)
        clone._learnings = list(self._learnings)
        clone._learning_keys = set(self._learning_keys)
        clone._child_ids = list(self._child_ids)
        clone._metadata = dict(self._metadata)
        return clone

    def to_dict(self) -> dict[str, Any]:
        """Public fields for presentation layers (children are added by the tree)."""
        return {
            "id": self.id,
            "parent_id": self.parent_id,
            "label": self.label,
            "research_goal": self.research_goal,
            "status": self.status.value,
            "error_message": self.error_message,
            "learnings_count": len(self._learnings),
            "search_results_count": len(self._search_results),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    def __repr__(self) -> str:
        return (
            f"ExplorationNode(id={self.id!r}, session_id={self.session_id!r}, "
            f"label={self.label!r}, status={self.status.name}, "
            f"parent_id={self.parent_id!r}, children={len(self._child_ids)})"
        )
