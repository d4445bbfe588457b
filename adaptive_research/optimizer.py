"""Turn an accumulated citation pool into a bounded, diversified, ranked list."""

import logging
import random

from .citation import CitationCandidate
from .strategy import FetchingStrategy

logger = logging.getLogger(__name__)

# Filtering cutoffs
MIN_RELEVANCE = 0.3
MIN_CONTENT_CHARS = 100

# Every candidate keeps a nonzero chance in weighted sampling
SAMPLING_WEIGHT_FLOOR = 0.1

# Scores closer than this are treated as tied in the final ranking
TIE_EPSILON = 0.1


def filter_candidates(pool: list[CitationCandidate]) -> list[CitationCandidate]:
    """Drop low-relevance and thin-content candidates."""
    return [
        c for c in pool
        if c.relevance_score >= MIN_RELEVANCE and len(c.content) >= MIN_CONTENT_CHARS
    ]


def sampling_weight(candidate: CitationCandidate) -> float:
    """Quadratic bias toward relevance, floored so nothing has zero weight."""
    return candidate.relevance_score ** 2 + SAMPLING_WEIGHT_FLOOR


def weighted_sample(
    candidates: list[CitationCandidate],
    target: int,
    rng: random.Random,
) -> list[CitationCandidate]:
    """
    Draw up to ``target`` candidates without replacement, proportional to weight.

    Returns a copy of the input when it already fits within ``target``.
    The top-scoring candidate is not guaranteed a place; that is the
    point of sampling rather than cutting at top-K.
    """
    if len(candidates) <= target:
        return list(candidates)
    selected = _weighted_draw(candidates, target, rng)
    logger.info("Applied relevance-weighted randomization - selected %d citations", len(selected))
    return selected


def weighted_order(
    candidates: list[CitationCandidate],
    rng: random.Random,
) -> list[CitationCandidate]:
    """Relevance-biased random permutation of all candidates."""
    return _weighted_draw(candidates, len(candidates), rng)


def _weighted_draw(
    candidates: list[CitationCandidate],
    count: int,
    rng: random.Random,
) -> list[CitationCandidate]:
    remaining = [(c, sampling_weight(c)) for c in candidates]
    selected: list[CitationCandidate] = []

    while len(selected) < count and remaining:
        total = sum(w for _, w in remaining)
        pick = rng.random() * total
        cumulative = 0.0
        chosen = len(remaining) - 1  # float rounding can leave pick just above the sum
        for i, (_, weight) in enumerate(remaining):
            cumulative += weight
            if cumulative >= pick:
                chosen = i
                break
        candidate, _ = remaining.pop(chosen)
        selected.append(candidate)

    return selected


def ensure_domain_diversity(
    candidates: list[CitationCandidate],
    target: int,
) -> list[CitationCandidate]:
    """
    Cap each domain's share, then backfill to ``target`` in original order.

    Each domain (in first-seen order) contributes at most
    ``max(1, target // domain_count)`` candidates.
    """
    if not candidates:
        return []

    by_domain: dict[str, list[CitationCandidate]] = {}
    for c in candidates:
        by_domain.setdefault(c.domain, []).append(c)

    per_domain = max(1, target // len(by_domain))
    diversified: list[CitationCandidate] = []
    for domain_candidates in by_domain.values():
        diversified.extend(domain_candidates[:per_domain])
        if len(diversified) >= target:
            break

    if len(diversified) < target:
        chosen_ids = {id(c) for c in diversified}
        for c in candidates:
            if len(diversified) >= target:
                break
            if id(c) not in chosen_ids:
                diversified.append(c)
                chosen_ids.add(id(c))

    return diversified


def select_final(
    candidates: list[CitationCandidate],
    target: int,
    rng: random.Random,
) -> list[CitationCandidate]:
    """
    Rank by relevance (descending) and truncate to ``target``.

    Runs of adjacent candidates whose scores are within ``TIE_EPSILON``
    of the run's leader are shuffled, so near-equal sources are not
    always ordered the same way.
    """
    ranked = sorted(candidates, key=lambda c: c.relevance_score, reverse=True)

    result: list[CitationCandidate] = []
    i = 0
    while i < len(ranked):
        leader = ranked[i].relevance_score
        j = i + 1
        while j < len(ranked) and leader - ranked[j].relevance_score < TIE_EPSILON:
            j += 1
        group = ranked[i:j]
        rng.shuffle(group)
        result.extend(group)
        i = j

    return result[:target]


def optimize_citations(
    pool: list[CitationCandidate],
    strategy: FetchingStrategy,
    rng: random.Random | None = None,
) -> list[CitationCandidate]:
    """
    Filter, sample, diversify and rank a candidate pool down to the target size.

    Args:
        pool: Deduplicated candidates accumulated by the fetch loop
        strategy: Supplies target size and the domain diversity flag
        rng: Random source (pass a seeded one for reproducible output)

    Returns:
        At most ``strategy.target_citations`` candidates; empty for an empty pool
    """
    if not pool:
        logger.warning("No citations found to optimize")
        return []

    rng = rng or random.Random()
    target = strategy.target_citations
    logger.info("Optimizing citation set from %d total sources", len(pool))

    filtered = filter_candidates(pool)
    if len(filtered) < len(pool):
        logger.debug("Filtered out %d weak citations", len(pool) - len(filtered))

    if strategy.require_domain_diversity:
        # Quotas run over the whole weighted ordering so every filtered domain
        # can reach the final set (min(domains, target) distinct domains)
        sampled = ensure_domain_diversity(weighted_order(filtered, rng), target)
    else:
        sampled = weighted_sample(filtered, target, rng)

    final = select_final(sampled, target, rng)
    logger.info("Citation optimization completed - final set size: %d", len(final))
    return final
