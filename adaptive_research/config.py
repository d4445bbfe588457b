"""Tunable thresholds for the fetch loop and limits for exploration trees."""

from dataclasses import dataclass

from .errors import FETCH_TIMEOUT

# Single source of truth for the default Claude model across all modules.
DEFAULT_MODEL = "claude-sonnet-4-20250514"


@dataclass(frozen=True)
class FetchThresholds:
    """Stopping thresholds and resource limits for adaptive fetching."""

    quality_threshold: float = 0.7
    diversity_threshold: float = 0.6
    authoritative_ratio: float = 0.6
    fetch_timeout: float = FETCH_TIMEOUT
    max_variations: int = 20
    max_concurrent_fetches: int = 5

    def __post_init__(self) -> None:
        """Validate configuration."""
        errors = []

        for name in ("quality_threshold", "diversity_threshold", "authoritative_ratio"):
            value = getattr(self, name)
            if not (0.0 <= value <= 1.0):
                errors.append(f"{name} must be between 0 and 1, got {value}")
        if self.fetch_timeout <= 0:
            errors.append(f"fetch_timeout must be > 0, got {self.fetch_timeout}")
        if self.max_variations < 1:
            errors.append(f"max_variations must be >= 1, got {self.max_variations}")
        if self.max_concurrent_fetches < 1:
            errors.append(
                f"max_concurrent_fetches must be >= 1, got {self.max_concurrent_fetches}"
            )

        if errors:
            raise ValueError(f"Invalid FetchThresholds: {'; '.join(errors)}")


@dataclass(frozen=True)
class TreeConfig:
    """Shape limits for a deep research session."""

    max_depth: int = 2
    breadth_per_level: int = 3
    max_concurrent_nodes: int = 2

    def __post_init__(self) -> None:
        """Validate configuration."""
        errors = []

        if self.max_depth < 1:
            errors.append(f"max_depth must be >= 1, got {self.max_depth}")
        if self.breadth_per_level < 1:
            errors.append(f"breadth_per_level must be >= 1, got {self.breadth_per_level}")
        if self.max_concurrent_nodes < 1:
            errors.append(
                f"max_concurrent_nodes must be >= 1, got {self.max_concurrent_nodes}"
            )

        if errors:
            raise ValueError(f"Invalid TreeConfig: {'; '.join(errors)}")
