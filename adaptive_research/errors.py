"""Custom exceptions and shared constants for adaptive research."""

# Timeout for Anthropic API calls (seconds)
ANTHROPIC_TIMEOUT = 30.0

# Timeout for a single citation fetch call (seconds)
FETCH_TIMEOUT = 30.0


class ResearchError(Exception):
    """Base exception for adaptive research errors."""
    pass


class SearchError(ResearchError):
    """Raised when a citation provider search fails."""
    pass


class QueryGenerationError(ResearchError):
    """Raised when child query proposal fails for a node."""
    pass


class TreeError(ResearchError):
    """Base exception for exploration tree failures."""
    pass


class AdmissionError(TreeError):
    """A child node could not be admitted to the tree.

    Carries the parent id so callers can report which expansion failed.
    """

    def __init__(self, message: str = "", *, parent_id: str | None = None) -> None:
        super().__init__(message)
        self.parent_id = parent_id


class NodeNotFoundError(AdmissionError):
    """Referenced node does not exist in the tree."""
    pass


class DepthExceededError(AdmissionError):
    """Parent is already at the tree's maximum depth."""
    pass


class BreadthExceededError(AdmissionError):
    """Parent already holds the maximum number of children."""
    pass


class DuplicateNodeError(AdmissionError):
    """A node with the requested id is already in the tree."""
    pass


class NodeStateError(TreeError):
    """Illegal status change, e.g. mutating a node in a terminal state."""
    pass


class ExportError(ResearchError):
    """Raised when an exported tree view cannot be written."""
    pass
