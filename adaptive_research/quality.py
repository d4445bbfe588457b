"""Citation pool quality assessment: the stopping oracle for adaptive fetching."""

from dataclasses import dataclass

from .citation import CitationCandidate, HIGH_RELEVANCE_THRESHOLD
from .config import FetchThresholds
from .strategy import FetchingStrategy

# Content length (chars per citation) that counts as fully "rich"
RICH_CONTENT_CHARS = 2000.0

# Weights for the overall quality score
WEIGHT_RELEVANCE = 0.4
WEIGHT_DIVERSITY = 0.2
WEIGHT_RICHNESS = 0.2
WEIGHT_HIGH_QUALITY = 0.2


@dataclass(frozen=True)
class QualityAssessment:
    """Snapshot of a candidate pool's quality at a point in time."""
    average_relevance: float
    domain_diversity: float
    content_richness: float
    high_quality_ratio: float
    overall_quality: float
    total_count: int
    meets_target_count: bool

    @classmethod
    def empty(cls) -> "QualityAssessment":
        return cls(
            average_relevance=0.0,
            domain_diversity=0.0,
            content_richness=0.0,
            high_quality_ratio=0.0,
            overall_quality=0.0,
            total_count=0,
            meets_target_count=False,
        )


def assess_quality(
    pool: list[CitationCandidate],
    strategy: FetchingStrategy,
) -> QualityAssessment:
    """
    Score a candidate pool on relevance, diversity, richness and high-quality ratio.

    Pure function: does not mutate the pool.

    Args:
        pool: Current deduplicated candidate pool (may be empty)
        strategy: Active fetching strategy (supplies the target count)

    Returns:
        QualityAssessment; all zeros for an empty pool
    """
    if not pool:
        return QualityAssessment.empty()

    count = len(pool)
    average_relevance = sum(c.relevance_score for c in pool) / count
    domain_diversity = len({c.domain for c in pool}) / count
    total_content = sum(len(c.content) for c in pool)
    content_richness = min(1.0, total_content / (count * RICH_CONTENT_CHARS))
    high_quality = sum(1 for c in pool if c.relevance_score >= HIGH_RELEVANCE_THRESHOLD)
    high_quality_ratio = high_quality / count

    overall = (
        average_relevance * WEIGHT_RELEVANCE
        + domain_diversity * WEIGHT_DIVERSITY
        + content_richness * WEIGHT_RICHNESS
        + high_quality_ratio * WEIGHT_HIGH_QUALITY
    )

    return QualityAssessment(
        average_relevance=average_relevance,
        domain_diversity=domain_diversity,
        content_richness=content_richness,
        high_quality_ratio=high_quality_ratio,
        overall_quality=overall,
        total_count=count,
        meets_target_count=count >= strategy.target_citations,
    )


def should_continue_fetching(
    assessment: QualityAssessment,
    strategy: FetchingStrategy,
    round_number: int,
    thresholds: FetchThresholds | None = None,
) -> bool:
    """Decide whether another fetch round is warranted after ``round_number`` rounds."""
    thresholds = thresholds or FetchThresholds()

    if round_number >= strategy.max_batches:
        return False
    if assessment.total_count < strategy.target_citations:
        return True
    if assessment.overall_quality < thresholds.quality_threshold:
        return True
    if (strategy.require_domain_diversity
            and assessment.domain_diversity < thresholds.diversity_threshold):
        return True
    if (strategy.prioritize_authoritative
            and assessment.high_quality_ratio < thresholds.authoritative_ratio):
        return True
    return False
