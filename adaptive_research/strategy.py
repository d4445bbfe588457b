"""Fetching strategies: how many citations to gather and how hard to look."""

import logging
from dataclasses import dataclass, field, replace
from enum import Enum

logger = logging.getLogger(__name__)

# Target citation counts by query complexity
MIN_CITATIONS_SIMPLE = 3
MIN_CITATIONS_MODERATE = 8
MIN_CITATIONS_COMPLEX = 15

MAX_TOTAL_BATCHES = 5


class DiversificationLevel(Enum):
    BASIC = "basic"
    MODERATE = "moderate"
    COMPREHENSIVE = "comprehensive"


@dataclass(frozen=True)
class FetchingStrategy:
    """Plan for one adaptive fetch run. Immutable once computed."""
    target_citations: int = MIN_CITATIONS_MODERATE
    max_batches: int = 3
    diversification_level: DiversificationLevel = DiversificationLevel.MODERATE
    require_domain_diversity: bool = False
    prioritize_authoritative: bool = False
    require_multiple_perspectives: bool = False
    use_alternative_queries: bool = False
    profile_domain: str | None = None  # Used for domain-scoped query variations

    def __post_init__(self) -> None:
        """Validate strategy."""
        errors = []

        if self.target_citations < 1:
            errors.append(f"target_citations must be >= 1, got {self.target_citations}")
        if self.max_batches < 1:
            errors.append(f"max_batches must be >= 1, got {self.max_batches}")
        if not isinstance(self.diversification_level, DiversificationLevel):
            errors.append(
                f"diversification_level must be a DiversificationLevel, "
                f"got {self.diversification_level!r}"
            )

        if errors:
            raise ValueError(f"Invalid FetchingStrategy: {'; '.join(errors)}")

    def __str__(self) -> str:
        return (
            f"FetchingStrategy[target={self.target_citations}, "
            f"batches={self.max_batches}, level={self.diversification_level.name}]"
        )


@dataclass(frozen=True)
class QueryAnalysis:
    """Upstream analysis of a query (complexity 1-10 and a coarse intent)."""
    complexity_score: int = 5
    intent: str = ""
    requires_citations: bool = True


@dataclass(frozen=True)
class UserProfile:
    """The parts of a user profile that influence fetching."""
    domain: str | None = None
    expertise_level: str = "intermediate"
    preferences: frozenset[str] = field(default_factory=frozenset)

    def has_preference(self, name: str) -> bool:
        return name in self.preferences


def determine_strategy(
    analysis: QueryAnalysis | None = None,
    profile: UserProfile | None = None,
    improvement_round: bool = False,
) -> FetchingStrategy:
    """
    Derive a fetching strategy from query analysis and user profile.

    Args:
        analysis: Complexity/intent analysis, or None for moderate defaults
        profile: User profile, or None
        improvement_round: True when re-fetching to improve a weak result set

    Returns:
        FetchingStrategy for the run
    """
    target = MIN_CITATIONS_MODERATE
    max_batches = 3
    level = DiversificationLevel.MODERATE
    domain_diversity = False
    authoritative = False
    perspectives = False
    alternative_queries = False

    if analysis is not None:
        if analysis.complexity_score <= 3:
            target, max_batches, level = MIN_CITATIONS_SIMPLE, 2, DiversificationLevel.BASIC
        elif analysis.complexity_score <= 6:
            target, max_batches, level = MIN_CITATIONS_MODERATE, 3, DiversificationLevel.MODERATE
        else:
            target, max_batches, level = (
                MIN_CITATIONS_COMPLEX, MAX_TOTAL_BATCHES, DiversificationLevel.COMPREHENSIVE,
            )

        intent = analysis.intent.lower()
        if intent == "comparison":
            target = max(target, 12)
            level = DiversificationLevel.COMPREHENSIVE
            domain_diversity = True
        elif intent == "research":
            target = max(target, 10)
            authoritative = True
        elif intent == "analysis":
            target = max(target, 8)
            perspectives = True

    if profile is not None:
        if profile.expertise_level == "expert":
            target = max(target, 12)
            authoritative = True
        if profile.has_preference("comprehensive") or profile.has_preference("detailed"):
            target = max(target, 15)
            max_batches = MAX_TOTAL_BATCHES

    strategy = FetchingStrategy(
        target_citations=target,
        max_batches=max_batches,
        diversification_level=level,
        require_domain_diversity=domain_diversity,
        prioritize_authoritative=authoritative,
        require_multiple_perspectives=perspectives,
        use_alternative_queries=alternative_queries,
        profile_domain=profile.domain if profile is not None else None,
    )

    if improvement_round:
        strategy = replace(
            strategy,
            target_citations=max(strategy.target_citations + 5, 20),
            diversification_level=DiversificationLevel.COMPREHENSIVE,
            use_alternative_queries=True,
        )
        logger.info(
            "Improvement round detected - increasing target citations to %d",
            strategy.target_citations,
        )

    return strategy
