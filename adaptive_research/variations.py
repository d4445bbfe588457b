"""Template-based query variations for broadening citation searches."""

import logging

from .strategy import DiversificationLevel, FetchingStrategy

logger = logging.getLogger(__name__)

# Hard cap on variations, original query included
MAX_VARIATIONS = 20

# "{q}" is replaced by the original query
COMPREHENSIVE_TEMPLATES = (
    "{q} comprehensive guide",
    "{q} detailed analysis",
    "{q} best practices",
    "{q} latest research",
    "{q} expert opinion",
    "What is {q}?",
    "How does {q} work?",
    "Why is {q} important?",
    "{q} comparison",
    "{q} alternatives",
    "{q} pros and cons",
    "{q} research papers",
    "{q} academic study",
    "{q} scientific evidence",
)

MODERATE_TEMPLATES = (
    "{q} overview",
    "{q} explanation",
    "{q} examples",
    "understanding {q}",
    "{q} guide",
)

BASIC_TEMPLATES = (
    "{q} definition",
    "what is {q}",
    "{q} basics",
)

# "{d}" is replaced by the profile domain
PROFILE_DOMAIN_TEMPLATES = (
    "{q} in {d}",
    "{d} {q}",
    "{q} {d} perspective",
)

DOMAIN_TEMPLATES = (
    "{q} business application",
    "{q} technical implementation",
    "{q} academic research",
)

ALTERNATIVE_TEMPLATES = (
    "explain {q}",
    "discuss {q}",
    "analyze {q}",
    "examine {q}",
    "{q} recent developments",
    "{q} current trends",
    "{q} future outlook",
)

_LEVEL_TEMPLATES = {
    DiversificationLevel.COMPREHENSIVE: COMPREHENSIVE_TEMPLATES,
    DiversificationLevel.MODERATE: MODERATE_TEMPLATES,
    DiversificationLevel.BASIC: BASIC_TEMPLATES,
}


def _fill(templates: tuple[str, ...], query: str, domain: str = "") -> list[str]:
    return [t.format(q=query, d=domain) for t in templates]


def generate_query_variations(
    query: str,
    strategy: FetchingStrategy,
    limit: int = MAX_VARIATIONS,
) -> list[str]:
    """
    Expand a query into alternate search phrasings.

    The original query is always element zero. Output is deduplicated
    (order-preserving), blank entries are dropped, and the list is
    capped at ``limit``.

    Args:
        query: The original search query
        strategy: Supplies diversification level, flags and profile domain
        limit: Maximum number of variations to return

    Returns:
        List of query strings, original first
    """
    original = query.strip()
    variations = [original]
    variations += _fill(_LEVEL_TEMPLATES[strategy.diversification_level], original)

    if strategy.require_domain_diversity:
        domain = (strategy.profile_domain or "").strip()
        if domain:
            variations += _fill(PROFILE_DOMAIN_TEMPLATES, original, domain)
        variations += _fill(DOMAIN_TEMPLATES, original)

    if strategy.use_alternative_queries:
        variations += _fill(ALTERNATIVE_TEMPLATES, original)

    seen: set[str] = set()
    unique = []
    for v in variations:
        if not v or not v.strip() or v in seen:
            continue
        seen.add(v)
        unique.append(v)

    result = unique[:max(1, limit)]
    logger.debug("Generated %d query variations for %r", len(result), original)
    return result
